"""
전체 통계 계산

모든 분류기보다 먼저 실행되는 단일 패스:
- 최빈 높이/폰트 (공백이 아닌 글자 수로 가중, 동률이면 먼저 나온 것)
- 최대 높이와 그 폰트
- 최빈 줄 간격 (최빈 높이 항목 사이, 기본 12)
- 폰트 → 인라인 서식
"""

import logging
from typing import Dict, Hashable, Optional

from .models import Globals, ParseResult, WordFormat

logger = logging.getLogger(__name__)

DEFAULT_LINE_DISTANCE = 12


def _weight(text: str) -> int:
    return sum(1 for ch in text if not ch.isspace())


def most_used(counts: Dict[Hashable, int]):
    """가장 많이 나온 키 (동률이면 먼저 등록된 키)"""
    best_key, best_count = None, 0
    for key, count in counts.items():
        if count > best_count:
            best_key, best_count = key, count
    return best_key


def font_format(base_font: str) -> Optional[WordFormat]:
    """BaseFont 이름으로 서식 추정"""
    name = base_font.lower()
    bold = 'bold' in name
    oblique = 'italic' in name or 'oblique' in name
    if bold and oblique:
        return WordFormat.BOLD_OBLIQUE
    if bold:
        return WordFormat.BOLD
    if oblique:
        return WordFormat.OBLIQUE
    return None


def compute_globals(result: ParseResult) -> Globals:
    """
    result.pages[*].items 에서 Globals 계산

    result.fonts 는 폰트 키 → BaseFont 이름.
    """
    height_counts: Dict[int, int] = {}
    font_counts: Dict[Optional[str], int] = {}
    max_height = 0
    max_height_font = None

    for page in result.pages:
        for item in page.items:
            if item.height == 0 or item.image_id:
                continue
            height = int(item.height)
            weight = _weight(item.text)
            if weight:
                height_counts[height] = height_counts.get(height, 0) + weight
                font_counts[item.font_name] = font_counts.get(item.font_name, 0) + weight
            if height > max_height:
                max_height = height
                max_height_font = item.font_name

    modal_height = most_used(height_counts) or 0
    modal_font = most_used(font_counts)

    distance_counts: Dict[int, int] = {}
    for page in result.pages:
        last = None
        for item in page.items:
            if item.image_id:
                continue
            if int(item.height) == modal_height and item.text.strip():
                if last is not None and item.y != last.y:
                    distance = int(item.y - last.y)
                    if distance > 0:
                        distance_counts[distance] = distance_counts.get(distance, 0) + 1
                last = item
            else:
                last = None

    modal_distance = most_used(distance_counts) or DEFAULT_LINE_DISTANCE

    font_formats: Dict[str, WordFormat] = {}
    for font_key, base_font in result.fonts.items():
        if font_key == modal_font:
            continue
        fmt = font_format(base_font)
        if fmt is None and font_key == max_height_font:
            fmt = WordFormat.BOLD
        if fmt is not None:
            font_formats[font_key] = fmt

    globals_ = Globals(
        modal_height=modal_height,
        modal_font=modal_font,
        modal_distance=modal_distance,
        max_height=max_height,
        max_height_font=max_height_font,
        font_formats=font_formats,
    )
    logger.debug("globals: modal height=%d font=%s distance=%d max height=%d",
                 modal_height, modal_font, modal_distance, max_height)
    return globals_
