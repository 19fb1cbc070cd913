"""
반복 요소 제거

- 머리글/바닥글: 여러 페이지의 맨 위/맨 아래 줄이 (숫자, 공백 무시하고) 같으면 제거
- 페이지 번호: 맨 위/맨 아래 줄이 번호 패턴뿐이면 제거
"""

import logging
import re
from typing import Dict, List, Tuple

from .models import LineItem, ParseResult, WordType

logger = logging.getLogger(__name__)

_PAGE_NUMBER_PATTERNS = [
    re.compile(r'^\d+$'),
    re.compile(r'^page\s+\d+(\s+of\s+\d+)?$', re.IGNORECASE),
    re.compile(r'^\d+\s+of\s+\d+$', re.IGNORECASE),
    re.compile(r'^[-–]\s*\d+\s*[-–]$'),
]


def line_signature(lines: List[LineItem]) -> str:
    """대문자로 바꾸고 숫자/공백/NBSP 를 뺀 텍스트 (이미지 단어 제외)"""
    text = ''.join(
        ' '.join(w.text for w in line.words if w.type is not WordType.IMAGE).upper()
        for line in lines
    )
    return ''.join(ch for ch in text if not ch.isdigit() and ch not in ' \u00a0')


def _edge_lines(lines: List[LineItem]) -> Tuple[List[LineItem], List[LineItem]]:
    """y 가 가장 작은 줄들, 가장 큰 줄들"""
    if not lines:
        return [], []
    top = min(line.y for line in lines)
    bottom = max(line.y for line in lines)
    return ([line for line in lines if line.y == top],
            [line for line in lines if line.y == bottom])


def repetition_threshold(page_count: int) -> int:
    return max(3, page_count * 2 // 3)


def remove_repetitive_elements(result: ParseResult) -> ParseResult:
    """
    반복되는 머리글/바닥글 제거

    페이지가 3장 이상일 때만 동작한다.
    """
    if len(result.pages) < 3:
        return result

    edges = []
    counts: Dict[Tuple[str, str], int] = {}
    for page in result.pages:
        top, bottom = _edge_lines(page.lines)
        keys = (('top', line_signature(top)), ('bottom', line_signature(bottom)))
        edges.append(((top, keys[0]), (bottom, keys[1])))
        for key in keys:
            counts[key] = counts.get(key, 0) + 1

    threshold = repetition_threshold(len(result.pages))
    removed = 0
    for page, page_edges in zip(result.pages, edges):
        drop = set()
        for lines, key in page_edges:
            if key[1] and counts[key] >= threshold:
                drop.update(id(line) for line in lines)
        if drop:
            page.lines = [line for line in page.lines if id(line) not in drop]
            removed += len(drop)

    logger.debug("removed %d repetitive lines", removed)
    return result


def is_page_number(text: str) -> bool:
    text = text.strip()
    return any(p.match(text) for p in _PAGE_NUMBER_PATTERNS)


def strip_page_numbers(result: ParseResult) -> ParseResult:
    """맨 위/맨 아래 줄 중 페이지 번호만 있는 줄 제거"""
    for page in result.pages:
        top, bottom = _edge_lines(page.lines)
        drop = {id(line) for line in top + bottom
                if not line.is_table_row and is_page_number(line.text)}
        if drop:
            page.lines = [line for line in page.lines if id(line) not in drop]
    return result
