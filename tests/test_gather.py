"""블록 묶기"""

import pytest

from conftest import make_line

from litmd.layout.gather import gather_page
from litmd.layout.models import BlockType

pytestmark = pytest.mark.unit


def _row(text, y, toc=False):
    line = make_line(text, y=y, is_table_row=True, table_columns=text.split())
    if toc:
        line.type = BlockType.TOC
    return line


def test_paragraph_lines_are_separate_blocks():
    blocks = gather_page([make_line('first', y=100), make_line('second', y=114)])
    assert len(blocks) == 2
    assert all(block.type is BlockType.PARAGRAPH for block in blocks)


def test_table_rows_form_one_block():
    blocks = gather_page([make_line('before', y=80), _row('A B', 100), _row('1 2', 150),
                          make_line('after', y=250)])
    assert [len(block.items) for block in blocks] == [1, 2, 1]
    assert blocks[1].is_table
    assert blocks[1].type is None


def test_toc_rows_do_not_join_data_rows():
    blocks = gather_page([_row('Intro 1', 100, toc=True), _row('Scope 2', 114, toc=True),
                          _row('A B', 150)])
    assert [block.type for block in blocks] == [BlockType.TOC, None]
    assert len(blocks[0].items) == 2


def test_list_runs_merge():
    items = [make_line('- one', y=100, type=BlockType.LIST),
             make_line('- two', y=114, type=BlockType.LIST),
             make_line('Closing words', y=140)]
    blocks = gather_page(items)
    assert [block.type for block in blocks] == [BlockType.LIST, BlockType.PARAGRAPH]
    assert len(blocks[0].items) == 2


def test_headings_stand_alone():
    blocks = gather_page([make_line('Title', type=BlockType.H1), make_line('Sub', y=120,
                                                                           type=BlockType.H2)])
    assert [block.type for block in blocks] == [BlockType.H1, BlockType.H2]
