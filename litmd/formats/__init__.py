"""
형식별 변환기

- pdf_converter: pdf (객체 모델 + 레이아웃 파이프라인)
- docx_parser: docx
- xlsx_parser: xlsx

변환 결과는 모두 ConvertResult 로 돌려준다.
"""
from dataclasses import dataclass, field
from typing import List

from ..layout.models import ImageItem


@dataclass
class ConvertResult:
    """변환 결과"""
    markdown: str = ""
    images: List[ImageItem] = field(default_factory=list)
    format: str = ""        # pdf, docx, xlsx
    page_count: int = 0
    title: str = ""
    messages: List[str] = field(default_factory=list)
    filename: str = ""


__all__ = ['ConvertResult']
