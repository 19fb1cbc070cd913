"""
표 영역 감지 (텍스트 위치 기반)

페이지의 TextItem 만 보고 표 영역을 찾는다:
1. 머리글 행 방식: 간격이 넓은 짧은 항목 2~6개 + 정렬된 데이터 행
   - 알려진 머리글 (페이지를 넘어가는 연속 표)
   - 여러 줄 셀
2. 참조 표 방식: [CC1], [SD] 처럼 괄호로 감싼 짧은 ID 가 한 열에 정렬

모든 함수는 순수 함수이며 임계값은 TableThresholds 로 받는다.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

STRATEGY_KNOWN_HEADER = "known-header"
STRATEGY_MULTI_LINE = "multi-line"
STRATEGY_REFERENCE = "reference"


@dataclass(frozen=True)
class TableThresholds:
    """표 감지 임계값 (pt 단위)"""
    header_min_items: int = 2
    header_max_items: int = 6
    header_max_chars: int = 30
    min_column_gap: float = 40.0
    align_tolerance: float = 20.0
    footer_zone: float = 92.0
    known_headers: Tuple[str, ...] = (
        "Version Date Description",
        "Element Evaluator Actions",
        "Requirement Dependency",
    )
    known_header_min_items: int = 3
    multi_line_min_items: int = 6
    multi_line_min_rows: int = 2
    multi_line_tolerance: float = 30.0
    reference_min_items: int = 3
    reference_min_chars: int = 3
    reference_max_chars: int = 10
    reference_aligned_ratio: float = 0.8
    reference_column_offset: float = 30.0
    region_margin: float = 10.0
    column_slack: float = 15.0


@dataclass
class TableRegion:
    """감지된 표 영역"""
    min_y: float
    max_y: float
    columns: List[float] = field(default_factory=list)
    has_header: bool = False
    strategy: str = ""
    score: float = 0.0

    def contains(self, y: float, margin: float = 0.0) -> bool:
        return self.min_y - margin <= y <= self.max_y + margin

    def overlaps(self, other: 'TableRegion') -> bool:
        return self.min_y <= other.max_y and self.max_y >= other.min_y


def _text(item) -> str:
    return item.text.strip()


def _visible(items) -> list:
    return [item for item in items if _text(item)]


def score_header_row(row_items: Sequence, thresholds: TableThresholds) -> Tuple[List[float], float]:
    """
    한 행이 표 머리글처럼 보이는지 점수 계산

    Returns:
        (열 X 좌표 목록, 열 수 기반 점수). 머리글이 아니면 ([], 0)
    """
    if not thresholds.header_min_items <= len(row_items) <= thresholds.header_max_items:
        return [], 0.0

    columns = []
    last_x = float('-inf')
    for item in sorted(row_items, key=lambda i: i.x):
        text = _text(item)
        if not text or len(text) > thresholds.header_max_chars:
            continue
        if item.x - last_x >= thresholds.min_column_gap:
            columns.append(item.x)
            last_x = item.x

    if len(columns) < 2:
        return [], 0.0
    return columns, float(len(columns) * 100)


def has_aligned_data_rows(items: Sequence, columns: Sequence[float], header_y: float,
                          thresholds: TableThresholds) -> bool:
    """머리글 아래에 열에 맞춰 정렬된 항목이 열 수 × 2 개 이상인지"""
    aligned = 0
    for item in items:
        if item.y <= header_y + 5 or not _text(item):
            continue
        if any(abs(item.x - col) < thresholds.align_tolerance for col in columns):
            aligned += 1
    return aligned >= len(columns) * 2


def find_header_row(items: Sequence, distance: float,
                    thresholds: TableThresholds) -> Tuple[Optional[float], List[float], float]:
    """
    표 머리글 행 찾기

    Args:
        items: 페이지의 TextItem 리스트
        distance: 최빈 줄 간격

    Returns:
        (머리글 y, 열 X 좌표, 점수). 없으면 (None, [], 0)
    """
    bucket_size = max(distance / 2.0, 5.0)
    buckets: Dict[int, list] = defaultdict(list)
    for item in _visible(items):
        buckets[int(item.y / bucket_size)].append(item)

    best = (None, [], 0.0)
    for bucket in sorted(buckets):
        columns, score = score_header_row(buckets[bucket], thresholds)
        if not columns:
            continue
        header_y = bucket * bucket_size
        if not has_aligned_data_rows(items, columns, header_y, thresholds):
            continue
        # 위쪽 머리글 선호
        score -= header_y / 10
        if best[0] is None or score > best[2]:
            best = (header_y, columns, score)
    return best


def is_known_header(items: Sequence, thresholds: TableThresholds) -> bool:
    """맨 위 행이 설정된 머리글 문구를 포함하는지 (페이지를 넘어가는 표)"""
    if not items:
        return False
    top = min(item.y for item in items)
    line = ' '.join(_text(item) for item in items if abs(item.y - top) < 5)
    return any(known in line for known in thresholds.known_headers)


def count_multi_line_rows(items: Sequence, columns: Sequence[float], distance: float,
                          thresholds: TableThresholds) -> int:
    """한 열 안에 여러 줄이 있는 행 묶음 개수"""
    row_threshold = max(distance * 2.5, 20.0)
    rows: List[list] = []   # [min_y, max_y, items]

    for item in sorted(_visible(items), key=lambda i: i.y):
        for row in rows:
            if row[0] - row_threshold <= item.y <= row[1] + row_threshold:
                row[2].append(item)
                row[0] = min(row[0], item.y)
                row[1] = max(row[1], item.y)
                break
        else:
            rows.append([item.y, item.y, [item]])

    count = 0
    for min_y, max_y, row_items in rows:
        if max_y - min_y <= distance * 0.8:
            continue
        for col in columns:
            in_column = sum(1 for item in row_items
                            if abs(item.x - col) < thresholds.multi_line_tolerance)
            if in_column >= 2:
                count += 1
                break
    return count


def _is_reference_id(text: str, thresholds: TableThresholds) -> bool:
    return (text.startswith('[') and text.endswith(']')
            and thresholds.reference_min_chars <= len(text) <= thresholds.reference_max_chars)


def detect_reference_table(items: Sequence, distance: float,
                           thresholds: TableThresholds) -> Optional[TableRegion]:
    """괄호 ID 열 + 설명 열로 된 2열 참조 표"""
    refs = [item for item in items if _is_reference_id(_text(item), thresholds)]
    if len(refs) < thresholds.reference_min_items:
        return None

    ref_x = refs[0].x
    aligned = sum(1 for item in refs if abs(item.x - ref_x) < thresholds.align_tolerance)
    ratio = aligned / len(refs)
    if ratio < thresholds.reference_aligned_ratio:
        return None

    min_y = min(item.y for item in refs)
    max_y = max(item.y for item in refs)
    top, bottom = min_y - distance * 2, max_y + distance

    second_x = None
    for item in _visible(items):
        if item.x > ref_x + thresholds.reference_column_offset and top <= item.y <= bottom:
            if second_x is None or item.x < second_x:
                second_x = item.x
    if second_x is None:
        return None

    for item in _visible(items):
        if top <= item.y <= bottom:
            min_y = min(min_y, item.y)

    return TableRegion(min_y=min_y, max_y=max_y, columns=[ref_x, second_x],
                       has_header=False, strategy=STRATEGY_REFERENCE, score=ratio)


def detect_table_regions(items: Sequence, distance: float, page_height: float,
                         thresholds: Optional[TableThresholds] = None) -> List[TableRegion]:
    """
    페이지에서 표 영역 찾기

    애매하면 표가 아닌 것으로 본다.
    """
    thresholds = thresholds or TableThresholds()
    regions: List[TableRegion] = []

    header_y, columns, score = find_header_row(items, distance, thresholds)
    if header_y is not None and len(columns) >= 2:
        footer_top = page_height - thresholds.footer_zone
        table_items = [item for item in _visible(items) if header_y <= item.y < footer_top]
        max_y = max([header_y] + [item.y for item in table_items])

        strategy = None
        if (len(table_items) >= thresholds.known_header_min_items
                and is_known_header(table_items, thresholds)):
            strategy = STRATEGY_KNOWN_HEADER
        elif (len(table_items) >= thresholds.multi_line_min_items
              and count_multi_line_rows(table_items, columns, distance, thresholds)
              >= thresholds.multi_line_min_rows):
            strategy = STRATEGY_MULTI_LINE

        if strategy:
            regions.append(TableRegion(min_y=header_y, max_y=max_y, columns=columns,
                                       has_header=True, strategy=strategy, score=score))

    reference = detect_reference_table(items, distance, thresholds)
    if reference is not None and not any(reference.overlaps(r) for r in regions):
        regions.append(reference)

    for region in regions:
        logger.debug("table region %s y=%.1f..%.1f columns=%d",
                     region.strategy, region.min_y, region.max_y, len(region.columns))
    return regions


def find_region(y: float, regions: Sequence[TableRegion],
                thresholds: TableThresholds) -> Optional[TableRegion]:
    for region in regions:
        if region.contains(y, thresholds.region_margin):
            return region
    return None


def column_index(x: float, columns: Sequence[float], thresholds: TableThresholds) -> int:
    """x + 여유 이전에서 시작하는 가장 오른쪽 열"""
    best = 0
    for i, col in enumerate(columns):
        if x >= col - thresholds.column_slack:
            best = i
        else:
            break
    return best


def group_table_rows(items: Sequence, columns: Sequence[float], distance: float,
                     thresholds: TableThresholds) -> List[list]:
    """
    표 영역 항목을 시각적 행으로 묶기

    같은 열의 항목은 행을 늘리고 (여러 줄 셀),
    다른 열의 항목은 행 높이가 임계값 × 1.2 미만일 때만 합류한다.
    각 행은 (열, y, x) 순서로 정렬.
    """
    row_threshold = max(distance * 3.0, 35.0)
    rows: List[list] = []   # [min_y, max_y, items]

    for item in sorted(items, key=lambda i: i.y):
        col = column_index(item.x, columns, thresholds)
        for row in rows:
            if not row[0] - row_threshold <= item.y <= row[1] + row_threshold:
                continue
            cols = {column_index(other.x, columns, thresholds) for other in row[2]}
            if col in cols or (cols and row[1] - row[0] < row_threshold * 1.2):
                row[2].append(item)
                row[0] = min(row[0], item.y)
                row[1] = max(row[1], item.y)
                break
        else:
            rows.append([item.y, item.y, [item]])

    result = []
    for _, _, row_items in rows:
        row_items.sort(key=lambda i: (column_index(i.x, columns, thresholds), round(i.y / 2), i.x))
        result.append(row_items)
    return result
