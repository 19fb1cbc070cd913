"""
litmd CLI

사용법:
    litmd document.pdf
    litmd report.docx -o result.md
    litmd document.pdf --json
    litmd docs/ -r --workers 4
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__, convert, to_json, write_output
from .batch import BatchConverter, BatchOptions
from .errors import LitMDError
from .options import DEFAULT_STRIP, ConvertOptions, Deadline, StripOption

logger = logging.getLogger('litmd')

LOG_FORMAT = '%(levelname)s %(name)s: %(message)s'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='litmd',
        description='litmd - PDF/DOCX/XLSX to Markdown',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
지원 포맷:
  .pdf, .docx, .xlsx

예시:
  litmd document.pdf
  litmd document.pdf --json
  litmd report.docx -o result.md
  litmd docs/ -r --output-dir out/
'''
    )
    parser.add_argument('inputs', nargs='+', metavar='INPUT', help='문서 파일 또는 디렉터리')
    parser.add_argument('--output', '-o', help='출력 파일 (파일 하나일 때)')
    parser.add_argument('--json', '-j', action='store_true', help='JSON으로 출력')
    parser.add_argument('--version', action='version', version=f'litmd {__version__}')

    batch = parser.add_argument_group('일괄 변환')
    batch.add_argument('--recursive', '-r', action='store_true', help='하위 디렉터리까지')
    batch.add_argument('--no-skip-existing', action='store_true', help='.md 가 있어도 다시 변환')
    batch.add_argument('--output-dir', help='모든 .md 를 저장할 디렉터리')
    batch.add_argument('--workers', type=int, default=1, help='동시 변환 수')

    conv = parser.add_argument_group('변환 옵션')
    conv.add_argument('--password', default='', help='PDF 비밀번호')
    conv.add_argument('--no-images', action='store_true', help='이미지 추출 안 함')
    conv.add_argument('--no-formatting', action='store_true', help='굵게/기울임 표시 안 함')
    conv.add_argument('--no-lists', action='store_true', help='목록 감지 안 함')
    conv.add_argument('--no-headings', action='store_true', help='제목 감지 안 함')
    conv.add_argument('--keep-headers-footers', action='store_true', help='반복 머리글/바닥글 유지')
    conv.add_argument('--keep-blank-pages', action='store_true', help='빈 페이지 유지')
    conv.add_argument('--strip-page-numbers', action='store_true', help='페이지 번호 제거')
    conv.add_argument('--strip-toc', action='store_true', help='목차 제거')
    conv.add_argument('--strip-footnotes', action='store_true', help='각주 제거')
    conv.add_argument('--page-separator', default='', help='페이지 사이 구분 문자열')
    conv.add_argument('--timeout', type=float, help='파일당 제한 시간 (초)')

    parser.add_argument('--verbose', '-v', action='store_true', help='디버그 로그')
    return parser


def options_from_args(args: argparse.Namespace) -> ConvertOptions:
    strip = set(DEFAULT_STRIP)
    if args.keep_headers_footers:
        strip.discard(StripOption.HEADERS_FOOTERS)
    if args.keep_blank_pages:
        strip.discard(StripOption.BLANK_PAGES)
    if args.strip_page_numbers:
        strip.add(StripOption.PAGE_NUMBERS)
    if args.strip_toc:
        strip.add(StripOption.TOC)
    if args.strip_footnotes:
        strip.add(StripOption.FOOTNOTES)

    return ConvertOptions(
        extract_images=not args.no_images,
        preserve_formatting=not args.no_formatting,
        password=args.password,
        strip=frozenset(strip),
        detect_lists=not args.no_lists,
        detect_headings=not args.no_headings,
        page_separator=args.page_separator,
    )


def run_single(path: Path, args: argparse.Namespace, options: ConvertOptions) -> int:
    result = convert(path, options=options, deadline=Deadline(args.timeout))
    for message in result.messages:
        logger.warning("%s: %s", path, message)

    if args.output:
        output_path = Path(args.output)
        if args.json:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(to_json(result), encoding='utf-8')
        else:
            write_output(result, output_path)
        print(f"저장됨: {output_path}", file=sys.stderr)
    else:
        output = to_json(result) if args.json else result.markdown
        sys.stdout.write(output)
        if output and not output.endswith('\n'):
            sys.stdout.write('\n')
    return 0


def run_batch(args: argparse.Namespace, options: ConvertOptions) -> int:
    batch_options = BatchOptions(
        recursive=args.recursive,
        skip_existing=not args.no_skip_existing,
        output_dir=Path(args.output_dir) if args.output_dir else None,
        workers=args.workers,
        timeout=args.timeout,
    )
    result = BatchConverter(options, batch_options).run(args.inputs)
    for outcome in result.errors:
        print(f"  Error: {outcome.path}: [{outcome.category}] {outcome.message}", file=sys.stderr)
    print(result.summary())
    return 1 if result.failed else 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format=LOG_FORMAT)

    try:
        options = options_from_args(args)
        paths = [Path(p) for p in args.inputs]
        single = len(paths) == 1 and not paths[0].is_dir()
        if single:
            if not paths[0].exists():
                print(f"오류: 파일을 찾을 수 없습니다: {paths[0]}", file=sys.stderr)
                return 1
            return run_single(paths[0], args, options)
        if args.output:
            print("오류: -o 는 파일 하나일 때만 쓸 수 있습니다 (--output-dir 사용)", file=sys.stderr)
            return 1
        return run_batch(args, options)
    except LitMDError as e:
        print(f"오류: [{e.category}] {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"오류: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
