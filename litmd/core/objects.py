"""
PDF 객체 모델

닫힌 변형 집합 (closed variant set):

    Null        -> None
    Boolean     -> bool
    Number      -> int / float
    String      -> bytes
    Name        -> PDFName (str 하위 클래스)
    Array       -> list
    Dictionary  -> dict (키는 이름 문자열)
    Stream      -> PDFStream
    Reference   -> PDFRef

kind_of() 는 값이 어느 변형인지 돌려주고, 그 외 형태에는 TypeError 를 던진다.
객체 그래프를 순회하는 코드는 ObjectKind 로 모든 경우를 처리한다.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class PDFName(str):
    """Name 객체 (/Type 의 'Type')"""

    def __repr__(self):
        return f"/{str.__str__(self)}"


@dataclass(frozen=True)
class PDFRef:
    """객체 참조 (예: 1 0 R)"""
    obj_num: int
    gen_num: int = 0

    def __repr__(self):
        return f"Ref({self.obj_num} {self.gen_num} R)"


@dataclass(eq=False)
class PDFStream:
    """Stream 객체 - 사전(attrs)과 원본 바이트(raw)"""
    attrs: Dict[str, Any]
    raw: bytes
    obj_num: Optional[int] = None
    gen_num: int = 0
    # 복호화 완료 여부 (문서가 관리)
    decrypted: bool = field(default=False, repr=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.attrs

    def __getitem__(self, key: str) -> Any:
        return self.attrs[key]

    @property
    def type_name(self) -> Optional[str]:
        value = self.attrs.get('Type')
        return str(value) if value is not None else None

    def __repr__(self):
        return f"PDFStream({self.attrs!r}, <{len(self.raw)} bytes>)"


class ObjectKind(Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    NAME = "name"
    ARRAY = "array"
    DICTIONARY = "dictionary"
    STREAM = "stream"
    REFERENCE = "reference"


def kind_of(obj: Any) -> ObjectKind:
    """값의 객체 종류. 모델 밖의 값이면 TypeError."""
    if obj is None:
        return ObjectKind.NULL
    # bool 은 int 하위 클래스이므로 먼저 검사
    if isinstance(obj, bool):
        return ObjectKind.BOOLEAN
    if isinstance(obj, (int, float)):
        return ObjectKind.NUMBER
    if isinstance(obj, PDFName):
        return ObjectKind.NAME
    if isinstance(obj, (bytes, bytearray)):
        return ObjectKind.STRING
    if isinstance(obj, list):
        return ObjectKind.ARRAY
    if isinstance(obj, dict):
        return ObjectKind.DICTIONARY
    if isinstance(obj, PDFStream):
        return ObjectKind.STREAM
    if isinstance(obj, PDFRef):
        return ObjectKind.REFERENCE
    raise TypeError(f"not a PDF object: {type(obj).__name__}")


def as_number(obj: Any, default: float = 0) -> float:
    if isinstance(obj, bool):
        return default
    if isinstance(obj, (int, float)):
        return obj
    return default


# PDFDocEncoding 에서 Latin-1 과 다른 구간 (0x18-0x1F, 0x80-0x9F)
_PDFDOC_DIFF = {
    0x18: '˘', 0x19: 'ˇ', 0x1A: 'ˆ', 0x1B: '˙',
    0x1C: '˝', 0x1D: '˛', 0x1E: '˚', 0x1F: '˜',
    0x80: '•', 0x81: '†', 0x82: '‡', 0x83: '…',
    0x84: '—', 0x85: '–', 0x86: 'ƒ', 0x87: '⁄',
    0x88: '‹', 0x89: '›', 0x8A: '−', 0x8B: '‰',
    0x8C: '„', 0x8D: '“', 0x8E: '”', 0x8F: '‘',
    0x90: '’', 0x91: '‚', 0x92: '™', 0x93: 'ﬁ',
    0x94: 'ﬂ', 0x95: 'Ł', 0x96: 'Œ', 0x97: 'Š',
    0x98: 'Ÿ', 0x99: 'Ž', 0x9A: 'ı', 0x9B: 'ł',
    0x9C: 'œ', 0x9D: 'š', 0x9E: 'ž', 0xA0: '€',
}


def decode_text_string(value: Any) -> str:
    """
    텍스트 문자열 (Info 사전 등) 디코딩

    UTF-16BE/LE BOM, UTF-8 BOM, 그 외는 PDFDocEncoding.
    """
    if value is None:
        return ''
    if isinstance(value, str):
        return str(value)
    if not isinstance(value, (bytes, bytearray)):
        return str(value)
    data = bytes(value)
    if data.startswith(b'\xfe\xff'):
        return data[2:].decode('utf-16-be', errors='replace')
    if data.startswith(b'\xff\xfe'):
        return data[2:].decode('utf-16-le', errors='replace')
    if data.startswith(b'\xef\xbb\xbf'):
        return data[3:].decode('utf-8', errors='replace')
    return ''.join(_PDFDOC_DIFF.get(b, chr(b)) for b in data)
