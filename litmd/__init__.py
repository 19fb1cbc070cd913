"""
litmd - PDF/DOCX/XLSX → Markdown 변환기

- PDF: 객체 모델/xref/암호화 처리 + 레이아웃 재구성 (제목, 목록, 표, 목차, 각주)
- DOCX, XLSX: OOXML 직접 파싱

사용법:
    from litmd import convert, convert_file, to_json

    result = convert('document.pdf')
    print(result.markdown)

    # 바이트 입력 + 옵션
    from litmd import ConvertOptions, StripOption
    options = ConvertOptions(password='secret', strip={StripOption.HEADERS_FOOTERS})
    result = convert(pdf_bytes, options=options)

    # .md + <이름>_images/ 저장
    convert_file('report.docx', 'out/report.md')
"""
import logging
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from .errors import (
    ConversionTimeoutError, InvalidOptionsError, LitMDError, MalformedDocumentError,
    MalformedPDFError, UnsupportedEncryptionError, UnsupportedFeatureError,
    UnsupportedFilterError, UnsupportedFormatError,
)
from .options import ConvertOptions, Deadline, StripOption
from .formats import ConvertResult
from .formats.docx_parser import convert_docx
from .formats.pdf_converter import convert_pdf
from .formats.xlsx_parser import convert_xlsx
from .output_formatter import to_json, write_output

__version__ = '1.0.0'
__all__ = [
    # 통합 API
    'convert', 'convert_file', 'detect_format', 'to_json', 'write_output',
    'ConvertResult', 'ConvertOptions', 'StripOption', 'Deadline',
    # 예외
    'LitMDError', 'InvalidOptionsError', 'UnsupportedFormatError',
    'MalformedDocumentError', 'MalformedPDFError', 'UnsupportedFeatureError',
    'UnsupportedEncryptionError', 'UnsupportedFilterError', 'ConversionTimeoutError',
]

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ('pdf', 'docx', 'xlsx')

_OLE_MAGIC = b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1'
_ZIP_ENTRIES = (('word/document.xml', 'docx'), ('xl/workbook.xml', 'xlsx'))


def detect_format(data: bytes, filename: Optional[str] = None) -> str:
    """
    입력 형식 판별

    1. zip 이면 필수 항목 (word/document.xml, xl/workbook.xml)
    2. 앞 1024 바이트 안의 %PDF-
    3. 확장자

    Raises:
        UnsupportedEncryptionError: 암호가 걸린 Office 문서 (OLE 컨테이너)
        UnsupportedFormatError: 판별 불가
    """
    if data[:4] == b'PK\x03\x04':
        try:
            with zipfile.ZipFile(BytesIO(data), 'r') as zf:
                names = set(zf.namelist())
        except zipfile.BadZipFile:
            names = set()
        for entry, fmt in _ZIP_ENTRIES:
            if entry in names:
                return fmt

    if b'%PDF-' in data[:1024]:
        return 'pdf'

    ext = Path(filename).suffix.lower().lstrip('.') if filename else ''
    if data[:8] == _OLE_MAGIC and ext in ('docx', 'xlsx'):
        raise UnsupportedEncryptionError(f"encrypted Office document: {filename}")
    if ext in SUPPORTED_FORMATS:
        return ext
    raise UnsupportedFormatError(f"unsupported input format: {filename or 'bytes'}")


def convert(source: Union[str, Path, bytes],
            options: Optional[ConvertOptions] = None,
            filename: Optional[str] = None,
            deadline: Optional[Deadline] = None) -> ConvertResult:
    """
    문서 변환 (자동 형식 감지)

    Args:
        source: 파일 경로 또는 바이트
        options: 변환 옵션
        filename: 바이트 입력 시 파일명 (확장자 판별용)
        deadline: 변환 제한 시간

    Returns:
        ConvertResult

    Examples:
        result = convert('document.pdf')
        result = convert(data, filename='report.xlsx')
    """
    options = options or ConvertOptions()
    deadline = deadline or Deadline.none()

    if isinstance(source, (str, Path)):
        path = Path(source)
        data = path.read_bytes()
        filename = filename or path.name
    elif isinstance(source, (bytes, bytearray)):
        data = bytes(source)
    else:
        raise InvalidOptionsError(f"source must be a path or bytes, not {type(source).__name__}",
                                  parameter_name='source')

    fmt = detect_format(data, filename)
    logger.debug("converting %s as %s", filename or '<bytes>', fmt)

    if fmt == 'pdf':
        result = convert_pdf(data, options, deadline)
    elif fmt == 'docx':
        markdown, images, title = convert_docx(data, options)
        result = ConvertResult(markdown=markdown, images=images, format='docx',
                               page_count=1, title=title)
    else:
        markdown, title, sheet_count = convert_xlsx(data)
        result = ConvertResult(markdown=markdown, format='xlsx',
                               page_count=sheet_count, title=title)
    deadline.check('done')

    result.filename = filename or ''
    return result


def convert_file(input_path: Union[str, Path], output_path: Union[str, Path, None] = None,
                 options: Optional[ConvertOptions] = None,
                 deadline: Optional[Deadline] = None) -> ConvertResult:
    """
    파일 변환 후 .md 와 이미지 저장

    output_path 가 없으면 입력 파일 옆에 <이름>.md
    """
    input_path = Path(input_path)
    output_path = Path(output_path) if output_path else input_path.with_suffix('.md')
    result = convert(input_path, options=options, deadline=deadline)
    write_output(result, output_path)
    return result
