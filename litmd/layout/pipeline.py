"""
레이아웃 파이프라인

TextItem 이 채워진 ParseResult 를 받아 단계별로 블록까지 만든다.
전체 통계 단계가 끝나기 전에는 어떤 분류기도 실행되지 않는다.
"""

import logging
from typing import Callable, List, Optional, Tuple

from ..options import ConvertOptions, Deadline, StripOption
from .footnotes import detect_footnotes
from .gather import gather_blocks
from .headings import detect_headings
from .lines import compact_lines
from .lists import detect_list_items
from .models import BlockType, ParseResult
from .renderer import remove_blank_pages
from .repetition import remove_repetitive_elements, strip_page_numbers
from .stats import compute_globals
from .toc import detect_toc

logger = logging.getLogger(__name__)


def _drop_toc(result: ParseResult) -> ParseResult:
    for page in result.pages:
        page.lines = [line for line in page.lines if line.type is not BlockType.TOC]
    return result


def _set_globals(result: ParseResult) -> ParseResult:
    result.globals = compute_globals(result)
    return result


def build_stages(options: ConvertOptions) -> List[Tuple[str, Callable[[ParseResult], ParseResult]]]:
    """옵션에 맞춰 실행할 (이름, 단계) 목록"""
    stages = [
        ('global-stats', _set_globals),
        ('compact-lines', lambda r: compact_lines(r, options.table_thresholds)),
    ]
    if options.should_strip(StripOption.HEADERS_FOOTERS):
        stages.append(('remove-repetitive', remove_repetitive_elements))
    if options.should_strip(StripOption.PAGE_NUMBERS):
        stages.append(('strip-page-numbers', strip_page_numbers))
    stages.append(('detect-toc', detect_toc))
    if options.should_strip(StripOption.TOC):
        stages.append(('strip-toc', _drop_toc))
    if options.detect_headings:
        stages.append(('detect-headings', lambda r: detect_headings(r, options.heading_thresholds)))
    if options.detect_lists:
        stages.append(('detect-lists', detect_list_items))
    stages.append(('detect-footnotes', detect_footnotes))
    stages.append(('gather-blocks', gather_blocks))
    if options.should_strip(StripOption.BLANK_PAGES):
        stages.append(('remove-blank-pages', remove_blank_pages))
    return stages


def run_pipeline(result: ParseResult, options: Optional[ConvertOptions] = None,
                 deadline: Optional[Deadline] = None) -> ParseResult:
    """
    모든 레이아웃 단계 실행

    Raises:
        ConversionTimeoutError: 데드라인 초과
    """
    options = options or ConvertOptions()
    deadline = deadline or Deadline.none()

    for name, stage in build_stages(options):
        deadline.check(name)
        logger.debug("stage %s", name)
        result = stage(result)
    return result
