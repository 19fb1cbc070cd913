"""
공용 fixture

- PDF: pdf_builder.build_text_pdf 로 만든 문서
- 레이아웃: TextItem/LineItem 을 직접 만드는 팩토리
- OOXML: zipfile 로 만든 DOCX/XLSX
"""

import zipfile
from io import BytesIO
from typing import Dict

import pytest

from pdf_builder import build_text_pdf

from litmd.core.content_stream import TextItem
from litmd.layout.models import Globals, LineItem, Page, ParseResult, Word


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated component tests")
    config.addinivalue_line("markers", "integration: end-to-end conversion tests")
    config.addinivalue_line("markers", "cli: command-line interface tests")


def make_item(text, x=72.0, y=100.0, height=12.0, width=None, font='F1', image_id=None):
    if width is None:
        width = len(text) * height * 0.5
    return TextItem(text=text, x=x, y=y, width=width, height=height,
                    font_name=font, image_id=image_id)


def make_line(text, x=72.0, y=100.0, height=12.0, font='F1', **kwargs):
    words = [Word(w) for w in text.split()]
    return LineItem(x=x, y=y, width=len(text) * height * 0.5, height=height,
                    words=words, font=font, **kwargs)


def make_result(*pages_lines, modal_height=12, modal_distance=12) -> ParseResult:
    """페이지별 LineItem 목록으로 ParseResult"""
    result = ParseResult(globals=Globals(modal_height=modal_height, modal_font='F1',
                                         modal_distance=modal_distance, max_height=modal_height))
    for index, lines in enumerate(pages_lines):
        result.pages.append(Page(index=index, lines=list(lines)))
    return result


def make_zip(entries: Dict[str, object]) -> bytes:
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def line_factory():
    return make_line


@pytest.fixture
def title_body_pdf() -> bytes:
    """24pt "Title" + 12pt "Body text." 한 페이지"""
    return build_text_pdf([[('Title', 72, 100, 24), ('Body text.', 72, 140, 12)]],
                          title='Sample Document')


@pytest.fixture
def hello_pdf() -> bytes:
    return build_text_pdf([[('Hello encrypted world', 72, 100, 12)]])
