"""
PDF Core Module

객체 모델, 파서/xref, 보안 핸들러, 스트림 필터, Content Stream 해석, 이미지 추출
"""
from .objects import ObjectKind, PDFName, PDFRef, PDFStream, kind_of
from .stream_decoder import StreamDecoder
from .parser import ObjectParser, PDFLexer, PDFParser, XRefEntry, parse_pdf
from .security import SecurityHandler, detect_encryption
from .document import PDFDocument, PDFPage, open_pdf
from .content_stream import FontInfo, FontRegistry, PageContent, TextItem, extract_page
from .image_extractor import ImageCollector, extract_page_images

__all__ = [
    # Objects
    'ObjectKind', 'PDFName', 'PDFRef', 'PDFStream', 'kind_of',
    # Parser
    'ObjectParser', 'PDFLexer', 'PDFParser', 'XRefEntry', 'parse_pdf', 'StreamDecoder',
    # Security
    'SecurityHandler', 'detect_encryption',
    # Document
    'PDFDocument', 'PDFPage', 'open_pdf',
    # Content Stream
    'FontInfo', 'FontRegistry', 'PageContent', 'TextItem', 'extract_page',
    # Image Extractor
    'ImageCollector', 'extract_page_images',
]
