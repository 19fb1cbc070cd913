"""
레이아웃 파이프라인 데이터 모델

TextItem (content_stream) → LineItem → LineItemBlock 순서로 페이지 내용이 바뀐다.
ParseResult 는 모든 단계를 관통하는 결과 객체.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class WordType(Enum):
    """특수 단어 종류"""
    LINK = "link"
    FOOTNOTE_LINK = "footnote_link"
    FOOTNOTE = "footnote"
    IMAGE = "image"

    @property
    def attach_without_whitespace(self) -> bool:
        return self is WordType.FOOTNOTE_LINK

    @property
    def plain_text_format(self) -> bool:
        """인라인 서식을 끈 상태에서도 변환 규칙을 적용"""
        return self is WordType.FOOTNOTE_LINK

    def to_text(self, s: str) -> str:
        if self is WordType.LINK:
            return f"[{s}]({s})"
        if self is WordType.FOOTNOTE_LINK:
            return f"[^{s}]"
        if self is WordType.FOOTNOTE:
            return f"[^{s}]:"
        return s


class WordFormat(Enum):
    """인라인 서식 (시작 기호, 끝 기호)"""
    BOLD = ("**", "**")
    OBLIQUE = ("_", "_")
    BOLD_OBLIQUE = ("**_", "_**")

    @property
    def start_symbol(self) -> str:
        return self.value[0]

    @property
    def end_symbol(self) -> str:
        return self.value[1]


@dataclass
class Word:
    text: str
    type: Optional[WordType] = None
    format: Optional[WordFormat] = None


class BlockType(Enum):
    H1 = "H1"
    H2 = "H2"
    H3 = "H3"
    H4 = "H4"
    H5 = "H5"
    H6 = "H6"
    TOC = "TOC"
    FOOTNOTES = "FOOTNOTES"
    CODE = "CODE"
    LIST = "LIST"
    PARAGRAPH = "PARAGRAPH"

    @property
    def headline_level(self) -> int:
        """H1~H6 이면 1~6, 아니면 0"""
        if self.value.startswith('H') and self.value[1:].isdigit():
            return int(self.value[1:])
        return 0

    @property
    def is_headline(self) -> bool:
        return self.headline_level > 0

    @property
    def merge_to_block(self) -> bool:
        return self in (BlockType.TOC, BlockType.FOOTNOTES, BlockType.CODE)

    @property
    def merge_following_untyped(self) -> bool:
        return self is BlockType.FOOTNOTES

    @property
    def merge_following_untyped_small_distance(self) -> bool:
        return self is BlockType.LIST

    @classmethod
    def headline(cls, level: int) -> 'BlockType':
        level = min(max(level, 1), 6)
        return cls(f"H{level}")


@dataclass
class LineItem:
    """한 줄 (같은 높이의 TextItem 묶음)"""
    x: float
    y: float
    width: float
    height: float
    words: List[Word] = field(default_factory=list)
    font: Optional[str] = None
    type: Optional[BlockType] = None
    is_table_row: bool = False
    is_table_header: bool = False
    table_columns: List[str] = field(default_factory=list)
    list_level: int = 0
    footnote_links: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return ' '.join(w.text for w in self.words)

    def copy(self) -> 'LineItem':
        return LineItem(
            x=self.x, y=self.y, width=self.width, height=self.height,
            words=list(self.words), font=self.font, type=self.type,
            is_table_row=self.is_table_row, is_table_header=self.is_table_header,
            table_columns=list(self.table_columns), list_level=self.list_level,
            footnote_links=list(self.footnote_links),
        )


@dataclass
class LineItemBlock:
    items: List[LineItem] = field(default_factory=list)
    type: Optional[BlockType] = None

    @property
    def is_table(self) -> bool:
        return bool(self.items) and all(item.is_table_row for item in self.items)


@dataclass
class Page:
    index: int
    width: float = 612.0
    height: float = 792.0
    items: List[Any] = field(default_factory=list)   # TextItem
    lines: List[LineItem] = field(default_factory=list)
    blocks: List[LineItemBlock] = field(default_factory=list)


@dataclass
class Globals:
    """문서 전체 통계"""
    modal_height: int = 0
    modal_font: Optional[str] = None
    modal_distance: int = 12
    max_height: int = 0
    max_height_font: Optional[str] = None
    font_formats: Dict[str, WordFormat] = field(default_factory=dict)
    toc_pages: List[int] = field(default_factory=list)


@dataclass
class ImageItem:
    """문서에서 추출한 이미지"""
    id: str                 # image_001
    source_path: str        # XObject 이름 또는 zip 내부 경로
    format: str             # png, jpeg, ...
    data: bytes = field(default=b'', repr=False)
    alt_text: str = ""
    page_index: int = 0
    width: int = 0
    height: int = 0

    @property
    def extension(self) -> str:
        from ..core.image_extractor import image_extension
        return image_extension(self.format)

    @property
    def filename(self) -> str:
        return f"{self.id}.{self.extension}"


@dataclass
class ParseResult:
    pages: List[Page] = field(default_factory=list)
    globals: Globals = field(default_factory=Globals)
    images: List[ImageItem] = field(default_factory=list)
    footnotes: Dict[str, str] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)
    # 폰트 키 → BaseFont 이름
    fonts: Dict[str, str] = field(default_factory=dict)
