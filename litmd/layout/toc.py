"""
목차 감지

"제목 ....... 12" 처럼 점 리더와 쪽 번호로 끝나는 줄이 3줄 이상 이어지면 목차.
목차 줄은 [제목, 쪽] 두 열의 표 행이 되고 | Contents | Page | 머리글로 출력된다.
"""

import logging
import re
from typing import List, Optional, Tuple

from .models import BlockType, LineItem, ParseResult

logger = logging.getLogger(__name__)

MIN_TOC_LINES = 3

_DOT_LEADER = re.compile(r'^(?P<title>.*?\S)\s*(?:\.{3,}|…+|(?:\.\s+){2,}\.?|·{3,})\s*(?P<page>\d+)$')
_TRAILING_NUMBER = re.compile(r'^(?P<title>.*?\S)\s+(?P<page>\d+)$')


def match_toc_line(text: str) -> Optional[Tuple[str, str, bool]]:
    """
    목차 줄 분석

    Returns:
        (제목, 쪽 번호, 점 리더 여부) 또는 None
    """
    text = text.strip()
    m = _DOT_LEADER.match(text)
    if m:
        return m.group('title').rstrip(' .'), m.group('page'), True
    m = _TRAILING_NUMBER.match(text)
    if m:
        return m.group('title'), m.group('page'), False
    return None


def _candidate(line: LineItem):
    if line.is_table_row or line.type is not None:
        return None
    return match_toc_line(line.text)


def detect_toc(result: ParseResult) -> ParseResult:
    """페이지별로 목차 줄 묶음을 찾아 TOC 표 행으로 표시"""
    for page in result.pages:
        runs: List[List[Tuple[LineItem, Tuple[str, str, bool]]]] = []
        current: list = []
        for line in page.lines:
            match = _candidate(line)
            if match is None:
                if current:
                    runs.append(current)
                current = []
                continue
            current.append((line, match))
        if current:
            runs.append(current)

        found = False
        for run in runs:
            if len(run) < MIN_TOC_LINES or not any(m[2] for _, m in run):
                continue
            for line, (title, number, _) in run:
                line.type = BlockType.TOC
                line.is_table_row = True
                line.table_columns = [title, number]
            found = True

        if found and page.index not in result.globals.toc_pages:
            result.globals.toc_pages.append(page.index)
            logger.debug("table of contents on page %d", page.index + 1)
    return result
