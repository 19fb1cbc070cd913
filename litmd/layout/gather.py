"""
블록 묶기 (LineItem → LineItemBlock)

- 연속된 표 행 → 표 블록 하나 (목차 묶음도 표 블록)
- 제목 → 줄 하나짜리 블록
- 연속된 목록 항목 → LIST 블록 하나
- 그 외 → 줄마다 블록 하나
"""

import logging
from typing import List

from .models import BlockType, LineItem, LineItemBlock, ParseResult

logger = logging.getLogger(__name__)


def _block_type(line: LineItem):
    if line.type is BlockType.TOC:
        return BlockType.TOC
    if line.is_table_row:
        return None
    return line.type or BlockType.PARAGRAPH


def _continues(block: LineItemBlock, line: LineItem) -> bool:
    last = block.items[-1]
    if last.is_table_row and line.is_table_row:
        return (last.type is BlockType.TOC) == (line.type is BlockType.TOC)
    return block.type is BlockType.LIST and line.type is BlockType.LIST


def gather_page(lines: List[LineItem]) -> List[LineItemBlock]:
    blocks: List[LineItemBlock] = []
    for line in lines:
        if blocks and _continues(blocks[-1], line):
            blocks[-1].items.append(line)
        else:
            blocks.append(LineItemBlock(items=[line], type=_block_type(line)))
    return blocks


def gather_blocks(result: ParseResult) -> ParseResult:
    for page in result.pages:
        page.blocks = gather_page(page.lines)
    logger.debug("gathered %d blocks", sum(len(p.blocks) for p in result.pages))
    return result
