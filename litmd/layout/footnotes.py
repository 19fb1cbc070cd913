"""
각주 감지

본문의 각주 참조(FOOTNOTE_LINK 단어)와 페이지 아래쪽의 작은 글씨 각주 본문을 연결한다.
연결된 본문은 페이지에서 빠지고 result.footnotes 에 저장된다.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from .models import BlockType, LineItem, ParseResult, WordType

logger = logging.getLogger(__name__)

# (1) 본문 / 1. 본문 / 1) 본문 / 1 본문
_NUMBERED = re.compile(r'^\(?(\d+)(?:\)|\.)?\s+(\S.*)$')
_PARENTHESIZED = re.compile(r'^\((\d+)\)\s*(\S.*)$')


def parse_footnote_start(line: LineItem) -> Optional[Tuple[str, str]]:
    """각주 본문 첫 줄이면 (번호, 본문)"""
    text = line.text.strip()
    m = _PARENTHESIZED.match(text) or _NUMBERED.match(text)
    if m:
        return m.group(1), m.group(2).strip()
    return None


def _trailing_small_run(lines: List[LineItem], modal_height: int) -> List[LineItem]:
    """페이지 맨 아래부터 이어지는, 최빈 높이보다 작은 줄들 (위→아래 순서)"""
    run = []
    for line in reversed(lines):
        if line.is_table_row or line.type not in (None, BlockType.LIST):
            break
        if not 0 < line.height < modal_height:
            break
        run.append(line)
    run.reverse()
    return run


def _page_anchors(lines: List[LineItem]) -> List[str]:
    anchors = []
    for line in lines:
        for number in line.footnote_links:
            if number not in anchors:
                anchors.append(number)
    return anchors


def detect_footnotes(result: ParseResult) -> ParseResult:
    """
    페이지마다 각주 본문을 찾아 참조와 연결

    같은 번호가 여러 페이지에 나오면 뒤 페이지의 라벨은 "번호-쪽" 이 된다.
    """
    modal = result.globals.modal_height
    for page in result.pages:
        anchors = _page_anchors(page.lines)
        if not anchors:
            continue

        bodies: Dict[str, List[str]] = {}
        consumed = set()
        current: Optional[str] = None
        for line in _trailing_small_run(page.lines, modal):
            start = parse_footnote_start(line)
            if start and start[0] in anchors:
                current = start[0]
                bodies[current] = [start[1]]
                consumed.add(id(line))
            elif current is not None and start is None:
                bodies[current].append(line.text.strip())
                consumed.add(id(line))
            else:
                current = None

        if not bodies:
            continue

        labels = {}
        for number, parts in bodies.items():
            label = number if number not in result.footnotes else f"{number}-{page.index + 1}"
            labels[number] = label
            result.footnotes[label] = ' '.join(parts)

        page.lines = [line for line in page.lines if id(line) not in consumed]
        for line in page.lines:
            for word in line.words:
                if word.type is WordType.FOOTNOTE_LINK and word.text in labels:
                    word.text = labels[word.text]
            line.footnote_links = [labels.get(n, n) for n in line.footnote_links]

        logger.debug("page %d: %d footnotes", page.index + 1, len(bodies))
    return result
