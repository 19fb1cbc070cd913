"""
줄 압축 (TextItem → LineItem)

y 가 최빈 줄 간격의 절반 미만으로 차이 나는 항목을 한 줄로 묶는다.
표 영역이 감지되면 그 안의 항목은 시각적 행 단위로 묶고
열별 텍스트(table_columns)를 채운다.
"""

import logging
from typing import Dict, List, Optional, Sequence

from .models import LineItem, ParseResult, Word, WordFormat, WordType
from .table_detector import (
    TableThresholds, column_index, detect_table_regions, find_region, group_table_rows,
)

logger = logging.getLogger(__name__)

BULLET_CHARS = ('-', '•', '–')
_ATTACH_LEFT = ('.', ',', ':', ';', ')', ']', '}')
_PUNCTUATION = set('-–.,:;()[]{}')
_HYPHENS = ('-', '–')


def _is_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def needs_space_between(prev_text: str, next_text: str, gap: float) -> bool:
    """같은 줄의 두 조각 사이에 공백이 필요한지"""
    if gap < 0:
        return False

    prev_last = prev_text[-1:] if prev_text else ''
    next_first = next_text[:1]

    if prev_last in _HYPHENS or next_first in _HYPHENS:
        return False
    if gap > 30:
        return True
    if next_first in ('.', ',', ':', ';'):
        return False
    if prev_last in ('(', '[', '{'):
        return False
    if next_first in (')', ']', '}'):
        return False
    if gap < 15 and prev_last and next_first:
        if ((_is_alnum(prev_last) and _is_alnum(next_first))
                or (_is_alnum(prev_last) and next_first in _PUNCTUATION)
                or (prev_last in _PUNCTUATION and _is_alnum(next_first))):
            return False
    return gap > 10


def join_text(items: Sequence) -> str:
    """TextItem 들을 간격 규칙에 따라 한 문자열로 합치기"""
    text = ''
    last = None
    for item in items:
        piece = item.text

        if piece.strip()[:1] in _ATTACH_LEFT:
            text = text.rstrip(' ')

        if not text.endswith(' ') and not piece.startswith(' '):
            if last is None:
                if piece in BULLET_CHARS:
                    piece += ' '
            elif abs(item.y - last.y) > 3:
                # 셀 안 줄바꿈. 하이픈으로 끝나면 이어 붙인다
                if not last.text.strip().endswith(_HYPHENS):
                    text += ' '
            elif needs_space_between(last.text, piece, item.x - last.x - last.width):
                text += ' '

        text += piece
        last = item
    return text


def _split_words(text: str, fmt: Optional[WordFormat]) -> List[Word]:
    words = []
    for token in text.split():
        if token.startswith(('http:', 'https:')):
            words.append(Word(token, WordType.LINK, fmt))
        elif token.startswith('www.'):
            words.append(Word('http://' + token, WordType.LINK, fmt))
        else:
            words.append(Word(token, None, fmt))
    return words


def _is_footnote_mark(item, anchor) -> bool:
    """줄 첫 항목보다 1pt 넘게 올라가고 더 작은 숫자 = 각주 참조"""
    text = item.text.strip()
    return (text.isdigit()
            and item.y < anchor.y - 1
            and 0 < item.height < anchor.height)


def _line_words(items: Sequence, font_formats: Dict[str, WordFormat], marks: bool = True):
    fmt = font_formats.get(items[0].font_name) if items[0].font_name else None
    anchor = items[0]
    words: List[Word] = []
    links: List[str] = []
    run: list = []

    for index, item in enumerate(items):
        if marks and index > 0 and _is_footnote_mark(item, anchor):
            words.extend(_split_words(join_text(run), fmt))
            run = []
            number = item.text.strip()
            words.append(Word(number, WordType.FOOTNOTE_LINK))
            links.append(number)
            continue
        run.append(item)
    words.extend(_split_words(join_text(run), fmt))
    return words, links


def compact_line(items: Sequence, font_formats: Dict[str, WordFormat],
                 y: Optional[float] = None, marks: bool = True) -> Optional[LineItem]:
    """
    한 줄의 TextItem 들을 LineItem 으로 (항목 순서는 호출자가 정한다)

    marks=False 면 각주 참조 번호를 찾지 않는다 (표 행).
    """
    if not items:
        return None
    words, links = _line_words(items, font_formats, marks)
    if not words:
        return None

    heights = [item.height for item in items if item.text.strip()]
    return LineItem(
        x=items[0].x,
        y=items[0].y if y is None else y,
        width=sum(item.width for item in items),
        height=max(heights) if heights else 0,
        words=words,
        font=items[0].font_name,
        footnote_links=links,
    )


def image_line(item) -> LineItem:
    """이미지 자리 표시는 항상 단독 줄 (높이 0 이라 제목 판정에서 빠진다)"""
    return LineItem(x=item.x, y=item.y, width=item.width, height=0,
                    words=[Word(item.text, WordType.IMAGE)])


def group_by_line(items: Sequence, distance: float) -> List[list]:
    """출현 순서대로 훑으며 y 가 가까운 항목을 한 줄로 묶고, 줄 안은 x 순서"""
    threshold = distance / 2.0
    lines: List[list] = []
    current: list = []
    for item in items:
        if current and abs(current[0].y - item.y) >= threshold:
            lines.append(current)
            current = []
        current.append(item)
    if current:
        lines.append(current)
    return lines


def _column_texts(row_items: Sequence, columns: Sequence[float],
                  thresholds: TableThresholds) -> List[str]:
    cells: List[list] = [[] for _ in columns]
    for item in row_items:
        cells[column_index(item.x, columns, thresholds)].append(item)
    texts = []
    for cell in cells:
        cell.sort(key=lambda i: (round(i.y / 2), i.x))
        texts.append(join_text(cell).strip())
    return texts


def compact_page(page, globals_, thresholds: Optional[TableThresholds] = None) -> List[LineItem]:
    """
    페이지 한 장의 TextItem → LineItem

    Returns:
        y 순서로 정렬된 LineItem 리스트
    """
    thresholds = thresholds or TableThresholds()
    distance = globals_.modal_distance
    fonts = globals_.font_formats

    text_items = [item for item in page.items if not item.image_id]
    regions = detect_table_regions(text_items, distance, page.height, thresholds)

    plain = []
    in_region: Dict[int, list] = {}
    for item in text_items:
        region = find_region(item.y, regions, thresholds) if regions else None
        if region is None:
            plain.append(item)
        else:
            in_region.setdefault(id(region), []).append(item)

    lines: List[LineItem] = []
    for group in group_by_line(plain, distance):
        anchor_y = group[0].y
        line = compact_line(sorted(group, key=lambda i: i.x), fonts, y=anchor_y)
        if line is not None:
            lines.append(line)

    for region in regions:
        rows = group_table_rows(in_region.get(id(region), []), region.columns,
                                distance, thresholds)
        for row_index, row in enumerate(rows):
            line = compact_line(row, fonts, y=min(item.y for item in row), marks=False)
            if line is None:
                continue
            line.is_table_row = True
            line.is_table_header = row_index == 0 and region.has_header
            line.table_columns = _column_texts(row, region.columns, thresholds)
            lines.append(line)

    lines.extend(image_line(item) for item in page.items if item.image_id)
    lines.sort(key=lambda line: line.y)
    return lines


def compact_lines(result: ParseResult, thresholds: Optional[TableThresholds] = None) -> ParseResult:
    """모든 페이지의 items 를 lines 로 압축"""
    for page in result.pages:
        page.lines = compact_page(page, result.globals, thresholds) if page.items else []
    logger.debug("compacted %d lines", sum(len(p.lines) for p in result.pages))
    return result
