"""
목록 항목 감지

- 글머리표: -, •, –, ▪, ◦, * (출력은 - 로 통일)
- 번호: 1. 1) a. A) i. IV. 등
- 들여쓰기 단계: (x - 페이지의 목록 최소 x) / 20, 최대 6
"""

import logging
import re
from typing import Optional

from .models import BlockType, LineItem, ParseResult, Word

logger = logging.getLogger(__name__)

BULLETS = ('-', '•', '–', '▪', '◦', '*')
INDENT_UNIT = 20.0
MAX_LIST_LEVEL = 6

_ORDERED_PATTERNS = [
    re.compile(r'^\s*\d+[.)]\s+\S'),
    re.compile(r'^\s*[a-z][.)]\s+\S'),
    re.compile(r'^\s*[A-Z][.)]\s+\S'),
    re.compile(r'^\s*(?=[ivxlc]+[.)])x{0,3}(?:ix|iv|v?i{0,3})[.)]\s+\S'),
    re.compile(r'^\s*(?=[IVXLC]+[.)])X{0,3}(?:IX|IV|V?I{0,3})[.)]\s+\S'),
]


def is_bullet(word: str) -> bool:
    return word in BULLETS


def is_ordered_item(text: str) -> bool:
    return any(p.match(text) for p in _ORDERED_PATTERNS)


def is_list_line(line: LineItem) -> bool:
    if not line.words:
        return False
    return is_bullet(line.words[0].text) or is_ordered_item(line.text)


def list_level(x: float, min_x: Optional[float]) -> int:
    if min_x is None or x <= min_x:
        return 0
    return min(int((x - min_x) / INDENT_UNIT), MAX_LIST_LEVEL)


def _eligible(line: LineItem) -> bool:
    return line.type is None and not line.is_table_row and bool(line.words)


def detect_list_items(result: ParseResult) -> ParseResult:
    """목록 줄에 LIST 타입과 단계를 붙인다 (글머리표는 - 로 바꾼 사본)"""
    count = 0
    for page in result.pages:
        candidates = [line for line in page.lines if _eligible(line) and is_list_line(line)]
        if not candidates:
            continue
        min_x = min(line.x for line in candidates)
        marked = {id(line) for line in candidates}

        lines = []
        for line in page.lines:
            if id(line) not in marked:
                lines.append(line)
                continue
            first = line.words[0]
            if is_bullet(first.text) and first.text != '-':
                line = line.copy()
                line.words[0] = Word('-', first.type, first.format)
            line.type = BlockType.LIST
            line.list_level = list_level(line.x, min_x)
            lines.append(line)
            count += 1
        page.lines = lines

    logger.debug("detected %d list items", count)
    return result
