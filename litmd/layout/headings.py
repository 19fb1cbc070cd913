"""
제목 감지

1. 높이 기반 (최빈 높이 >= 8 일 때만)
   - 최대 높이가 있는 페이지: 최빈 + (최대 - 최빈)/4 보다 큰 줄 → H1 (최대 높이) / H2
   - 나머지 최빈보다 큰 높이들: 큰 순서대로 H2~H6
2. 대문자 줄: 최빈 높이지만 다른 폰트이고 전부 대문자 → 가장 깊은 단계 + 1

구두점으로 끝나는 줄, 글머리표 줄, 표 행, 목차 줄은 제외.
번호로 시작하는 줄 ("2. Scope") 은 제목이 될 수 있다.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .lists import is_bullet
from .models import BlockType, Globals, LineItem, ParseResult

logger = logging.getLogger(__name__)

_TERMINAL_PUNCTUATION = ('.', ',', ';', ':', '!', '?')


@dataclass(frozen=True)
class HeadingThresholds:
    """제목 판정 임계값"""
    min_modal_height: int = 8
    title_fraction: float = 0.25
    caps_gap_factor: float = 2.0
    max_level: int = 6


def classify_heading(line_height: float, globals_: Globals,
                     thresholds: Optional[HeadingThresholds] = None,
                     title_page: bool = False,
                     height_levels: Optional[Dict[int, int]] = None) -> Tuple[Optional[int], float]:
    """
    줄 높이로 제목 단계 추정

    Args:
        line_height: 줄 높이
        globals_: 문서 통계
        title_page: 최대 높이 줄이 있는 페이지인지
        height_levels: 높이 → 단계 (H2 이하, detect_headings 가 계산)

    Returns:
        (단계 1~6 또는 None, 신뢰도 0~1)
    """
    thresholds = thresholds or HeadingThresholds()
    modal = globals_.modal_height
    max_height = globals_.max_height
    height = int(line_height)

    if modal < thresholds.min_modal_height or height <= modal:
        return None, 0.0

    span = max(max_height - modal, 1)
    confidence = min(1.0, (height - modal) / span)

    if title_page:
        second_level = modal + int((max_height - modal) * thresholds.title_fraction)
        if height > second_level:
            return (1 if height == max_height else 2), confidence

    if height_levels and height in height_levels:
        return height_levels[height], confidence
    return None, 0.0


def is_heading_candidate(line: LineItem) -> bool:
    """제목이 될 수 있는 줄인지"""
    if line.type is not None or line.is_table_row or not line.words:
        return False
    text = line.text.strip()
    if not text or text.endswith(_TERMINAL_PUNCTUATION):
        return False
    return not is_bullet(line.words[0].text)


def _height_levels(pages, modal: int, thresholds: HeadingThresholds) -> Dict[int, int]:
    heights = sorted({int(line.height) for page in pages for line in page.lines
                      if is_heading_candidate(line) and int(line.height) > modal},
                     reverse=True)
    return {h: level for level, h in enumerate(heights, start=2) if level <= thresholds.max_level}


def _is_caps(text: str) -> bool:
    return any(ch.isalpha() for ch in text) and text == text.upper()


def detect_headings(result: ParseResult,
                    thresholds: Optional[HeadingThresholds] = None) -> ParseResult:
    """줄에 H1~H6 타입 지정"""
    thresholds = thresholds or HeadingThresholds()
    g = result.globals

    if g.modal_height >= thresholds.min_modal_height:
        title_pages = [page for page in result.pages
                       if any(is_heading_candidate(line) and int(line.height) == g.max_height
                              for line in page.lines)]
        for page in title_pages:
            for line in page.lines:
                if not is_heading_candidate(line):
                    continue
                level, _ = classify_heading(line.height, g, thresholds, title_page=True)
                if level:
                    line.type = BlockType.headline(level)

        levels = _height_levels(result.pages, g.modal_height, thresholds)
        for page in result.pages:
            for line in page.lines:
                if not is_heading_candidate(line):
                    continue
                level, _ = classify_heading(line.height, g, thresholds, height_levels=levels)
                if level:
                    line.type = BlockType.headline(level)

    deepest = max([line.type.headline_level for page in result.pages for line in page.lines
                   if line.type is not None and line.type.is_headline] + [1])
    if deepest < thresholds.max_level:
        caps_type = BlockType.headline(deepest + 1)
        gap = g.modal_distance * thresholds.caps_gap_factor
        for page in result.pages:
            previous: Optional[LineItem] = None
            for line in page.lines:
                if (is_heading_candidate(line)
                        and int(line.height) == g.modal_height
                        and line.font != g.modal_font
                        and _is_caps(line.text)
                        and (previous is None
                             or (previous.type is not None and previous.type.is_headline)
                             or line.y - previous.y > gap)):
                    line.type = caps_type
                previous = line

    counts: List[int] = [sum(1 for p in result.pages for l in p.lines
                             if l.type is not None and l.type.headline_level == level)
                         for level in range(1, 7)]
    logger.debug("headings per level: %s", counts)
    return result
