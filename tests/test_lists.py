"""목록 감지"""

import pytest

from conftest import make_line, make_result

from litmd.layout.lists import MAX_LIST_LEVEL, detect_list_items, is_ordered_item, list_level
from litmd.layout.models import BlockType

pytestmark = pytest.mark.unit


def test_bullets_are_normalized():
    original = make_line('• First item', x=72, y=100)
    result = make_result([original,
                          make_line('◦ Nested item', x=92, y=114),
                          make_line('* Third item', x=72, y=128)])
    detect_list_items(result)
    lines = result.pages[0].lines
    assert [line.type for line in lines] == [BlockType.LIST] * 3
    assert [line.words[0].text for line in lines] == ['-', '-', '-']
    assert [line.list_level for line in lines] == [0, 1, 0]
    # 원본 줄은 바뀌지 않는다
    assert original.words[0].text == '•'


def test_ordered_items():
    result = make_result([make_line('1. Install', y=100), make_line('2) Configure', y=114),
                          make_line('Plain paragraph', y=140)])
    detect_list_items(result)
    assert [line.type for line in result.pages[0].lines] == [BlockType.LIST, BlockType.LIST, None]
    assert result.pages[0].lines[0].words[0].text == '1.'


@pytest.mark.parametrize('text', ['1. item', '12) item', 'a. item', 'B) item', 'iv. item',
                                  'IX) item'])
def test_ordered_patterns(text):
    assert is_ordered_item(text)


@pytest.mark.parametrize('text', ['Version 2.0', '1.5 million', 'e.g. this', 'ivy. grows'])
def test_not_ordered(text):
    assert not is_ordered_item(text)


def test_level_is_capped():
    assert list_level(72, 72) == 0
    assert list_level(112, 72) == 2
    assert list_level(72 + 500, 72) == MAX_LIST_LEVEL


def test_typed_lines_are_left_alone():
    heading = make_line('- Not a list', type=BlockType.H2)
    row = make_line('- cell', y=120, is_table_row=True)
    result = make_result([heading, row])
    detect_list_items(result)
    assert heading.type is BlockType.H2
    assert row.type is None
