"""
Markdown 렌더러

ParseResult 를 읽기만 하므로 몇 번을 호출해도 결과가 같다.
페이지 경계에서 이어지는 표는 하나로 합쳐 머리글/구분선을 한 번만 쓴다.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..options import ConvertOptions, StripOption
from .models import BlockType, LineItem, LineItemBlock, ParseResult, Word, WordType

logger = logging.getLogger(__name__)

TOC_HEADER = ["Contents", "Page"]
_SENTENCE_PUNCTUATION = ('.', '!', '?')


def render_words(words: List[Word], formats: bool = True, footnotes: bool = True) -> str:
    """
    단어 → 한 줄 텍스트

    Args:
        formats: 굵게/기울임 기호와 링크 문법 출력 여부
        footnotes: 각주 참조 [^n] 출력 여부
    """
    out = []
    open_format = None
    first = True
    for word in words:
        if word.type is WordType.FOOTNOTE_LINK and not footnotes:
            continue
        if open_format is not None and word.format is not open_format:
            out.append(open_format.end_symbol)
            open_format = None
        attach = word.type is not None and word.type.attach_without_whitespace
        if not first and not attach and word.text not in _SENTENCE_PUNCTUATION:
            out.append(' ')
        if formats and word.format is not None and open_format is None:
            open_format = word.format
            out.append(open_format.start_symbol)
        if word.type is not None and (formats or word.type.plain_text_format):
            out.append(word.type.to_text(word.text))
        else:
            out.append(word.text)
        first = False
    if open_format is not None:
        out.append(open_format.end_symbol)
    return ''.join(out)


def escape_cell(text: str) -> str:
    return text.strip().replace('|', '\\|')


def row_cells(line: LineItem) -> List[str]:
    cells = line.table_columns if line.table_columns else [line.text]
    return [escape_cell(c) for c in cells]


def header_signature(cells: List[str]) -> str:
    return '|'.join(c.strip().lower() for c in cells)


@dataclass
class _Table:
    """렌더링 중 합쳐지는 표"""
    rows: List[List[str]] = field(default_factory=list)
    has_header: bool = False
    toc: bool = False

    @property
    def width(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    @property
    def signature(self) -> str:
        return header_signature(self.rows[0]) if self.rows else ''

    def absorb(self, block: LineItemBlock) -> bool:
        """이어지는 표 블록이면 행을 붙이고 True"""
        toc = block.type is BlockType.TOC
        if toc != self.toc or not block.items:
            return False
        rows = [row_cells(line) for line in block.items]
        if toc:
            self.rows.extend(rows)
            return True
        first = block.items[0]
        if first.is_table_header:
            if not self.has_header or header_signature(rows[0]) != self.signature:
                return False
            self.rows.extend(rows[1:])
            return True
        if len(rows[0]) != self.width:
            return False
        self.rows.extend(rows)
        return True

    def render(self) -> str:
        rows = [r for r in self.rows if any(c for c in r)]
        if self.toc:
            rows = [TOC_HEADER] + rows
        if not rows:
            return ''
        width = max(len(r) for r in rows)
        lines = []
        for index, row in enumerate(rows):
            padded = list(row) + [''] * (width - len(row))
            lines.append('| ' + ' | '.join(padded) + ' |')
            if index == 0:
                lines.append('| ' + ' | '.join(['---'] * width) + ' |')
        return '\n'.join(lines)


def _new_table(block: LineItemBlock) -> _Table:
    return _Table(rows=[row_cells(line) for line in block.items],
                  has_header=bool(block.items) and block.items[0].is_table_header,
                  toc=block.type is BlockType.TOC)


def render_block(block: LineItemBlock, options: Optional[ConvertOptions] = None) -> str:
    """표가 아닌 블록 하나를 Markdown 으로"""
    options = options or ConvertOptions()
    formats = options.preserve_formatting
    footnotes = not options.should_strip(StripOption.FOOTNOTES)

    if block.is_table or block.type is BlockType.TOC:
        return _new_table(block).render()

    block_type = block.type or BlockType.PARAGRAPH
    if block_type.is_headline:
        text = render_words(block.items[0].words, formats=False, footnotes=footnotes).strip()
        return f"{'#' * block_type.headline_level} {text}" if text else ''
    if block_type is BlockType.LIST:
        return '\n'.join('  ' * line.list_level + render_words(line.words, formats, footnotes)
                         for line in block.items)
    if block_type is BlockType.CODE:
        body = '\n'.join(render_words(line.words, False, footnotes) for line in block.items)
        return f"```\n{body}\n```"
    return '\n'.join(render_words(line.words, formats, footnotes) for line in block.items).strip()


def remove_blank_pages(result: ParseResult) -> ParseResult:
    """렌더링할 내용이 없는 페이지 제거"""
    kept = [page for page in result.pages
            if any(render_block(block).strip() for block in page.blocks)]
    dropped = len(result.pages) - len(kept)
    if dropped:
        logger.debug("dropped %d blank pages", dropped)
    result.pages = kept
    return result


def render_footnotes(result: ParseResult) -> str:
    return '\n'.join(f"[^{label}]: {body}" for label, body in result.footnotes.items())


def render_markdown(result: ParseResult, options: Optional[ConvertOptions] = None) -> str:
    """
    ParseResult → Markdown 문자열

    블록은 빈 줄 하나로, 페이지는 빈 줄 또는 page_separator 로 구분한다.
    결과는 앞뒤 공백을 지우고 줄바꿈 하나로 끝난다 (내용이 없으면 빈 문자열).
    """
    options = options or ConvertOptions()

    page_chunks: List[List[object]] = []
    table: Optional[_Table] = None   # 바로 앞에 출력된 표
    for page in result.pages:
        chunks: List[object] = []
        for block in page.blocks:
            if block.is_table or block.type is BlockType.TOC:
                if table is not None and table.absorb(block):
                    continue
                table = _new_table(block)
                chunks.append(table)
                continue
            text = render_block(block, options)
            if text:
                chunks.append(text)
                table = None
        page_chunks.append(chunks)

    pages = []
    for chunks in page_chunks:
        rendered = [c.render() if isinstance(c, _Table) else c for c in chunks]
        rendered = [c for c in rendered if c]
        if rendered:
            pages.append('\n\n'.join(rendered))

    separator = f"\n\n{options.page_separator}\n\n" if options.page_separator else '\n\n'
    body = separator.join(pages)

    if result.footnotes and not options.should_strip(StripOption.FOOTNOTES):
        body = body.rstrip() + '\n\n' + render_footnotes(result)

    body = body.strip()
    return body + '\n' if body else ''
