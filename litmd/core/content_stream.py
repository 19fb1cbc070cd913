"""
PDF Content Stream 인터프리터

Content Stream 의 연산자를 실행하면서 그래픽/텍스트 상태를 추적하고
위치가 있는 텍스트 조각(TextItem)과 이미지 배치(ImagePlacement)를 뽑는다.

주요 연산자:
- q/Q, cm: 그래픽 상태 스택과 CTM
- BT/ET: 텍스트 블록 시작/끝
- Tf, Tc, Tw, TL, Tz, Ts: 텍스트 속성
- Td, TD, Tm, T*: 위치 이동
- Tj, TJ, ', ": 텍스트 출력
- Do: Form XObject (재귀), Image XObject (배치 기록)
- BI/ID/EI: 인라인 이미지 (건너뜀)

좌표는 위에서 아래로 증가하는 페이지 좌표로 바꾼다 (y = 페이지 높이 - y).
"""

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import UnsupportedFilterError
from .objects import PDFName, PDFRef, PDFStream, as_number

logger = logging.getLogger(__name__)

MAX_FORM_DEPTH = 8
DEFAULT_GLYPH_WIDTH = 500
TJ_SPACE_THRESHOLD = 200

IDENTITY = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


class CSTokenType(Enum):
    """Content Stream 토큰 타입"""
    NUMBER = "number"
    STRING = "string"       # (Hello)
    HEX_STRING = "hex"      # <48656C6C6F>
    NAME = "name"           # /F1
    OPERATOR = "operator"   # Tj, BT, ET
    ARRAY_START = "["
    ARRAY_END = "]"
    DICT_START = "<<"
    DICT_END = ">>"


@dataclass
class CSToken:
    type: CSTokenType
    value: Any
    pos: int = 0


@dataclass
class TextItem:
    """
    위치가 있는 텍스트 조각

    y 는 페이지 위쪽 가장자리에서 베이스라인까지 거리.
    height 는 실효 폰트 크기. image_id 가 있으면 이미지 자리 표시.
    """
    text: str
    x: float
    y: float
    width: float
    height: float
    font_name: Optional[str] = None
    image_id: Optional[str] = None


@dataclass
class ImagePlacement:
    """Image XObject 가 그려진 위치"""
    name: str
    x: float
    y: float
    width: float
    height: float
    stream: Optional[PDFStream] = field(default=None, repr=False)


@dataclass
class PageContent:
    items: List[TextItem] = field(default_factory=list)
    images: List[ImagePlacement] = field(default_factory=list)


# ----------------------------------------------------------------------
# 토크나이저
# ----------------------------------------------------------------------

_WS = b' \t\n\r\x00\x0c'
_REGULAR = re.compile(rb'[^ \t\n\r\x00\x0c()<>\[\]{}/%]+')
_NUMBER = re.compile(rb'[+-]?(\d+\.?\d*|\.\d+)$')
_EI = re.compile(rb'[ \t\n\r\x00\x0c]EI(?=[ \t\n\r\x00\x0c]|$)')


class ContentStreamLexer:
    """Content Stream 토크나이저"""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0
        self.length = len(data)

    def tokens(self) -> Iterator[CSToken]:
        while True:
            token = self._read_token()
            if token is None:
                return
            yield token

    def _read_token(self) -> Optional[CSToken]:
        data = self.data
        while self.pos < self.length:
            ch = data[self.pos]
            if ch in _WS:
                self.pos += 1
            elif ch == 0x25:  # 주석
                while self.pos < self.length and data[self.pos] not in b'\r\n':
                    self.pos += 1
            else:
                break
        if self.pos >= self.length:
            return None

        start = self.pos
        ch = data[start:start + 1]

        if ch == b'[':
            self.pos += 1
            return CSToken(CSTokenType.ARRAY_START, '[', start)
        if ch == b']':
            self.pos += 1
            return CSToken(CSTokenType.ARRAY_END, ']', start)
        if ch == b'<':
            if data[start:start + 2] == b'<<':
                self.pos += 2
                return CSToken(CSTokenType.DICT_START, '<<', start)
            return self._read_hex_string(start)
        if ch == b'>':
            self.pos += 2 if data[start:start + 2] == b'>>' else 1
            return CSToken(CSTokenType.DICT_END, '>>', start)
        if ch == b'/':
            self.pos += 1
            match = _REGULAR.match(data, self.pos)
            raw = match.group(0) if match else b''
            self.pos += len(raw)
            return CSToken(CSTokenType.NAME, PDFName(_unescape_name(raw)), start)
        if ch == b'(':
            return self._read_string(start)
        if ch in (b'{', b'}', b')'):
            self.pos += 1
            return self._read_token()

        match = _REGULAR.match(data, self.pos)
        raw = match.group(0)
        self.pos += len(raw)
        if _NUMBER.match(raw):
            text = raw.decode('ascii')
            return CSToken(CSTokenType.NUMBER, float(text) if '.' in text else int(text), start)

        op = raw.decode('latin-1')
        if op == 'ID':
            # 인라인 이미지 데이터는 EI 까지 건너뜀
            match = _EI.search(data, self.pos)
            self.pos = match.end() if match else self.length
            return CSToken(CSTokenType.OPERATOR, 'EI', start)
        return CSToken(CSTokenType.OPERATOR, op, start)

    def _read_string(self, start: int) -> CSToken:
        self.pos += 1
        data = self.data
        result = bytearray()
        depth = 1
        escape_map = {
            0x6E: 0x0A, 0x72: 0x0D, 0x74: 0x09, 0x62: 0x08, 0x66: 0x0C,
            0x28: 0x28, 0x29: 0x29, 0x5C: 0x5C,
        }
        while self.pos < self.length:
            ch = data[self.pos]
            if ch == 0x5C:
                self.pos += 1
                if self.pos >= self.length:
                    break
                esc = data[self.pos]
                if esc in escape_map:
                    result.append(escape_map[esc])
                    self.pos += 1
                elif 0x30 <= esc <= 0x37:
                    octal = 0
                    for _ in range(3):
                        if self.pos < self.length and 0x30 <= data[self.pos] <= 0x37:
                            octal = octal * 8 + data[self.pos] - 0x30
                            self.pos += 1
                        else:
                            break
                    result.append(octal & 0xFF)
                elif esc in (0x0D, 0x0A):
                    self.pos += 1
                    if esc == 0x0D and self.pos < self.length and data[self.pos] == 0x0A:
                        self.pos += 1
                else:
                    result.append(esc)
                    self.pos += 1
            elif ch == 0x28:
                depth += 1
                result.append(ch)
                self.pos += 1
            elif ch == 0x29:
                depth -= 1
                self.pos += 1
                if depth == 0:
                    break
                result.append(ch)
            else:
                result.append(ch)
                self.pos += 1
        return CSToken(CSTokenType.STRING, bytes(result), start)

    def _read_hex_string(self, start: int) -> CSToken:
        self.pos += 1
        end = self.data.find(b'>', self.pos)
        if end == -1:
            end = self.length
        hex_str = bytes(b for b in self.data[self.pos:end] if b in b'0123456789ABCDEFabcdef')
        self.pos = min(end + 1, self.length)
        if len(hex_str) % 2 == 1:
            hex_str += b'0'
        return CSToken(CSTokenType.HEX_STRING, bytes.fromhex(hex_str.decode('ascii')), start)


def _unescape_name(raw: bytes) -> str:
    if b'#' in raw:
        raw = re.sub(rb'#([0-9A-Fa-f]{2})', lambda m: bytes([int(m.group(1), 16)]), raw)
    return raw.decode('latin-1')


def parse_operations(data: bytes) -> Iterator[Tuple[str, List[Any]]]:
    """(연산자, 피연산자 목록) 순서대로. 배열/사전은 Python 값으로 모은다."""
    operands: List[Any] = []
    containers: List[Any] = []

    for token in ContentStreamLexer(data).tokens():
        if token.type == CSTokenType.OPERATOR:
            if containers:
                # 닫히지 않은 배열 - 버림
                containers = []
            yield token.value, operands
            operands = []
            continue

        if token.type in (CSTokenType.ARRAY_START, CSTokenType.DICT_START):
            containers.append([] if token.type == CSTokenType.ARRAY_START else ('dict', []))
            continue

        if token.type in (CSTokenType.ARRAY_END, CSTokenType.DICT_END):
            if not containers:
                continue
            top = containers.pop()
            if isinstance(top, tuple):
                items = top[1]
                value = {str(items[i]): items[i + 1] for i in range(0, len(items) - 1, 2)}
            else:
                value = top
            _append(containers, operands, value)
            continue

        _append(containers, operands, token)


def _append(containers: List[Any], operands: List[Any], value: Any):
    if isinstance(value, CSToken):
        value = value if value.type in (CSTokenType.STRING, CSTokenType.HEX_STRING) else value.value
    if containers:
        top = containers[-1]
        (top[1] if isinstance(top, tuple) else top).append(value)
    else:
        operands.append(value)


# ----------------------------------------------------------------------
# 폰트
# ----------------------------------------------------------------------

# WinAnsiEncoding 에서 Latin-1 과 다른 0x80~0x9F 구간
WIN_ANSI_DIFF = {
    0x80: '€', 0x82: '‚', 0x83: 'ƒ', 0x84: '„', 0x85: '…', 0x86: '†',
    0x87: '‡', 0x88: 'ˆ', 0x89: '‰', 0x8A: 'Š', 0x8B: '‹', 0x8C: 'Œ',
    0x8E: 'Ž', 0x91: '‘', 0x92: '’', 0x93: '“', 0x94: '”', 0x95: '•',
    0x96: '–', 0x97: '—', 0x98: '˜', 0x99: '™', 0x9A: 'š', 0x9B: '›',
    0x9C: 'œ', 0x9E: 'ž', 0x9F: 'Ÿ',
}

# Differences 에 자주 나오는 글리프 이름
GLYPH_NAMES = {
    'space': ' ', 'bullet': '•', 'endash': '–', 'emdash': '—',
    'quoteleft': '‘', 'quoteright': '’', 'quotedblleft': '“', 'quotedblright': '”',
    'quotesingle': "'", 'quotedbl': '"', 'ellipsis': '…', 'fi': 'fi', 'fl': 'fl',
    'ff': 'ff', 'ffi': 'ffi', 'ffl': 'ffl', 'hyphen': '-', 'minus': '−',
    'period': '.', 'comma': ',', 'colon': ':', 'semicolon': ';',
    'parenleft': '(', 'parenright': ')', 'bracketleft': '[', 'bracketright': ']',
    'slash': '/', 'ampersand': '&', 'percent': '%', 'question': '?',
    'exclam': '!', 'copyright': '©', 'registered': '®', 'trademark': '™',
    'degree': '°', 'section': '§', 'paragraph': '¶', 'dagger': '†',
    'daggerdbl': '‡', 'zero': '0', 'one': '1', 'two': '2', 'three': '3',
    'four': '4', 'five': '5', 'six': '6', 'seven': '7', 'eight': '8', 'nine': '9',
}


def glyph_to_unicode(name: str) -> Optional[str]:
    if name in GLYPH_NAMES:
        return GLYPH_NAMES[name]
    if len(name) == 1:
        return name
    match = re.match(r'^uni([0-9A-Fa-f]{4})$', name) or re.match(r'^u([0-9A-Fa-f]{4,6})$', name)
    if match:
        return chr(int(match.group(1), 16))
    return None


@dataclass
class ToUnicodeCMap:
    """ToUnicode CMap (코드 → 유니코드)"""
    mapping: Dict[int, str] = field(default_factory=dict)
    # (low, high) 바이트 쌍, 길이 순 정렬
    codespace: List[Tuple[bytes, bytes]] = field(default_factory=list)
    code_lengths: List[int] = field(default_factory=list)

    def __bool__(self):
        return bool(self.mapping)

    def split_codes(self, raw: bytes) -> Iterator[Tuple[int, int]]:
        """(code, 바이트 수) 순서대로"""
        i = 0
        while i < len(raw):
            n = self._code_length(raw, i)
            yield int.from_bytes(raw[i:i + n], 'big'), n
            i += n

    def _code_length(self, raw: bytes, i: int) -> int:
        for low, high in self.codespace:
            n = len(low)
            chunk = raw[i:i + n]
            if len(chunk) == n and all(lo <= c <= hi for c, lo, hi in zip(chunk, low, high)):
                return n
        for n in self.code_lengths:
            chunk = raw[i:i + n]
            if len(chunk) == n and int.from_bytes(chunk, 'big') in self.mapping:
                return n
        return self.code_lengths[0] if self.code_lengths else 1


def _utf16(hex_digits: str) -> str:
    data = bytes.fromhex(hex_digits if len(hex_digits) % 2 == 0 else hex_digits + '0')
    if len(data) == 1:
        return chr(data[0])
    if len(data) % 2:
        data += b'\x00'
    return data.decode('utf-16-be', errors='replace')


def parse_tounicode_cmap(cmap_data: bytes) -> ToUnicodeCMap:
    """
    ToUnicode CMap 파싱

    beginbfchar
    <0048> <0048>
    endbfchar
    beginbfrange
    <0000> <00FF> <0000>
    <0100> <0102> [<0041> <0042> <0043>]
    endbfrange
    """
    cmap = ToUnicodeCMap()
    text = cmap_data.decode('latin-1')
    lengths = set()

    for block in re.finditer(r'begincodespacerange(.*?)endcodespacerange', text, re.DOTALL):
        for low, high in re.findall(r'<([0-9A-Fa-f]+)>\s*<([0-9A-Fa-f]+)>', block.group(1)):
            if len(low) % 2 == 0 and len(low) == len(high):
                cmap.codespace.append((bytes.fromhex(low), bytes.fromhex(high)))
    cmap.codespace.sort(key=lambda r: len(r[0]))

    for block in re.finditer(r'beginbfchar(.*?)endbfchar', text, re.DOTALL):
        for src, dst in re.findall(r'<([0-9A-Fa-f]+)>\s*<([0-9A-Fa-f]*)>', block.group(1)):
            cmap.mapping[int(src, 16)] = _utf16(dst) if dst else ''
            lengths.add(max(1, len(src) // 2))

    for block in re.finditer(r'beginbfrange(.*?)endbfrange', text, re.DOTALL):
        body = block.group(1)
        for start, end, dst in re.findall(
                r'<([0-9A-Fa-f]+)>\s*<([0-9A-Fa-f]+)>\s*<([0-9A-Fa-f]+)>', body):
            lo, hi = int(start, 16), int(end, 16)
            if hi < lo or hi - lo > 0xFFFF:
                continue
            lengths.add(max(1, len(start) // 2))
            base = _utf16(dst)
            if not base:
                continue
            prefix, last = base[:-1], ord(base[-1])
            for i, code in enumerate(range(lo, hi + 1)):
                if last + i <= 0x10FFFF:
                    cmap.mapping[code] = prefix + chr(last + i)
        for start, end, array in re.findall(
                r'<([0-9A-Fa-f]+)>\s*<([0-9A-Fa-f]+)>\s*\[([^\]]*)\]', body):
            lo, hi = int(start, 16), int(end, 16)
            lengths.add(max(1, len(start) // 2))
            dsts = re.findall(r'<([0-9A-Fa-f]+)>', array)
            for i, code in enumerate(range(lo, hi + 1)):
                if i < len(dsts):
                    cmap.mapping[code] = _utf16(dsts[i])

    cmap.code_lengths = sorted(lengths) or sorted({len(low) for low, _ in cmap.codespace})
    return cmap


@dataclass
class FontInfo:
    """폰트 정보"""
    name: str
    subtype: str = ""
    base_font: str = ""
    encoding: str = ""
    to_unicode: Optional[ToUnicodeCMap] = None
    widths: Dict[int, float] = field(default_factory=dict)
    first_char: int = 0
    missing_width: float = DEFAULT_GLYPH_WIDTH
    is_type0: bool = False
    differences: Dict[int, str] = field(default_factory=dict)

    def split_codes(self, raw: bytes) -> Iterator[Tuple[int, int]]:
        if self.to_unicode:
            yield from self.to_unicode.split_codes(raw)
        elif self.is_type0:
            for i in range(0, len(raw) - 1, 2):
                yield (raw[i] << 8) | raw[i + 1], 2
        else:
            for b in raw:
                yield b, 1

    def decode(self, raw: bytes) -> str:
        if not raw:
            return ''
        if self.to_unicode:
            parts = []
            for code, _ in self.to_unicode.split_codes(raw):
                if code in self.to_unicode.mapping:
                    parts.append(self.to_unicode.mapping[code])
                elif code in self.differences:
                    parts.append(self.differences[code])
                elif not self.is_type0:
                    parts.append(_simple_char(code))
            return _clean(''.join(parts))
        if self.is_type0:
            return _clean(raw[:len(raw) - len(raw) % 2].decode('utf-16-be', errors='replace'))
        if self.differences:
            return _clean(''.join(self.differences.get(b, _simple_char(b)) for b in raw))
        return basic_decode(raw)

    def glyph_width(self, code: int) -> float:
        """1/1000 단위 글리프 폭"""
        return self.widths.get(code, self.missing_width)


def _simple_char(code: int) -> str:
    if code in WIN_ANSI_DIFF:
        return WIN_ANSI_DIFF[code]
    return chr(code) if code < 0x100 else ''


def _clean(text: str) -> str:
    return ''.join(ch for ch in text if ch >= ' ' or ch in '\t\r\n')


def basic_decode(raw: bytes) -> str:
    """폰트 정보 없이 디코딩: UTF-16BE BOM, 아니면 WinAnsi/Latin-1"""
    if raw.startswith(b'\xfe\xff'):
        data = raw[2:]
        if len(data) % 2:
            data += b'\x00'
        return _clean(data.decode('utf-16-be', errors='replace'))
    return _clean(''.join(_simple_char(b) for b in raw))


def load_font(document, font_obj: Any, name: str) -> Optional[FontInfo]:
    """Font 사전에서 FontInfo 생성"""
    font = document.resolve(font_obj)
    if not isinstance(font, dict):
        return None

    info = FontInfo(
        name=name,
        subtype=str(font.get('Subtype', '')),
        base_font=str(document.resolve(font.get('BaseFont')) or ''),
    )
    info.is_type0 = info.subtype == 'Type0'

    encoding = document.resolve(font.get('Encoding'))
    if isinstance(encoding, PDFName):
        info.encoding = str(encoding)
    elif isinstance(encoding, dict):
        info.encoding = str(encoding.get('BaseEncoding', ''))
        info.differences = _parse_differences(document.resolve(encoding.get('Differences')))

    to_unicode = document.resolve(font.get('ToUnicode'))
    if isinstance(to_unicode, PDFStream):
        try:
            info.to_unicode = parse_tounicode_cmap(document.stream_data(to_unicode))
        except (ValueError, UnsupportedFilterError) as e:
            logger.debug("font %s: ToUnicode unreadable: %s", name, e)

    if info.is_type0:
        _load_cid_widths(document, font, info)
    else:
        info.first_char = int(as_number(document.resolve(font.get('FirstChar')), 0))
        widths = document.resolve(font.get('Widths'))
        if isinstance(widths, list):
            for i, w in enumerate(widths):
                info.widths[info.first_char + i] = float(as_number(document.resolve(w)))
        descriptor = document.resolve(font.get('FontDescriptor'))
        if isinstance(descriptor, dict) and descriptor.get('MissingWidth') is not None:
            missing = as_number(document.resolve(descriptor.get('MissingWidth')), 0)
            if missing > 0:
                info.missing_width = float(missing)

    return info


def _parse_differences(differences: Any) -> Dict[int, str]:
    result: Dict[int, str] = {}
    if not isinstance(differences, list):
        return result
    code = 0
    for item in differences:
        if isinstance(item, (int, float)) and not isinstance(item, bool):
            code = int(item)
        elif isinstance(item, PDFName):
            char = glyph_to_unicode(str(item))
            if char is not None:
                result[code] = char
            code += 1
    return result


def _load_cid_widths(document, font: dict, info: FontInfo):
    descendants = document.resolve(font.get('DescendantFonts'))
    if not isinstance(descendants, list) or not descendants:
        info.missing_width = 1000
        return
    cid_font = document.resolve(descendants[0])
    if not isinstance(cid_font, dict):
        info.missing_width = 1000
        return
    info.missing_width = float(as_number(document.resolve(cid_font.get('DW')), 1000))

    w_array = document.resolve(cid_font.get('W'))
    if not isinstance(w_array, list):
        return
    w_array = [document.resolve(v) for v in w_array]
    i = 0
    while i < len(w_array):
        first = w_array[i]
        if i + 1 < len(w_array) and isinstance(w_array[i + 1], list):
            for j, w in enumerate(w_array[i + 1]):
                info.widths[int(first) + j] = float(as_number(document.resolve(w)))
            i += 2
        elif i + 2 < len(w_array):
            last, width = w_array[i + 1], w_array[i + 2]
            if isinstance(first, (int, float)) and isinstance(last, (int, float)):
                for cid in range(int(first), min(int(last), int(first) + 0xFFFF) + 1):
                    info.widths[cid] = float(as_number(width))
            i += 3
        else:
            break


class FontRegistry:
    """
    문서 단위 폰트 캐시

    같은 리소스 이름이 다른 폰트 객체를 가리키면 "F1_12" 처럼 객체 번호를 붙인다.
    직접 사전이면 객체 번호 대신 "d" + id.
    """

    def __init__(self, document):
        self.document = document
        self.fonts: Dict[str, FontInfo] = {}
        self._by_object: Dict[Any, str] = {}

    def lookup(self, resources: Dict[str, Any], name: str) -> Optional[FontInfo]:
        font_dict = self.document.get(resources, 'Font', {})
        if not isinstance(font_dict, dict) or name not in font_dict:
            return None
        ref = font_dict[name]
        obj_key = (ref.obj_num, ref.gen_num) if isinstance(ref, PDFRef) else ('direct', id(ref))

        key = self._by_object.get(obj_key)
        if key is not None:
            return self.fonts[key]

        key = name
        if key in self.fonts:
            suffix = ref.obj_num if isinstance(ref, PDFRef) else f"d{id(ref)}"
            key = f"{name}_{suffix}"
        info = load_font(self.document, ref, key)
        if info is None:
            return None
        self.fonts[key] = info
        self._by_object[obj_key] = key
        return info


# ----------------------------------------------------------------------
# 인터프리터
# ----------------------------------------------------------------------

def mat_mul(m1, m2) -> Tuple[float, ...]:
    """m1 × m2 (6원소 행렬)"""
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + b1 * c2,
        a1 * b2 + b1 * d2,
        c1 * a2 + d1 * c2,
        c1 * b2 + d1 * d2,
        e1 * a2 + f1 * c2 + e2,
        e1 * b2 + f1 * d2 + f2,
    )


@dataclass
class GraphicsState:
    """q/Q 로 저장/복원되는 상태"""
    ctm: Tuple[float, ...] = IDENTITY
    font: Optional[FontInfo] = None
    font_size: float = 12.0
    char_spacing: float = 0      # Tc
    word_spacing: float = 0      # Tw
    leading: float = 0           # TL
    horizontal_scale: float = 100  # Tz (%)
    rise: float = 0              # Ts

    def copy(self) -> 'GraphicsState':
        return GraphicsState(self.ctm, self.font, self.font_size, self.char_spacing,
                             self.word_spacing, self.leading, self.horizontal_scale, self.rise)


class ContentStreamInterpreter:
    """한 페이지의 Content Stream 실행"""

    def __init__(self, document, fonts: FontRegistry, page_box: List[float]):
        self.document = document
        self.fonts = fonts
        self.left = page_box[0]
        self.top = page_box[3]
        self.content = PageContent()

        self.gs = GraphicsState()
        self.gs_stack: List[GraphicsState] = []
        self.tm = IDENTITY
        self.tlm = IDENTITY
        self._forms_active: List[Any] = []

    def run(self, data: bytes, resources: Dict[str, Any], depth: int = 0) -> PageContent:
        for op, operands in parse_operations(data):
            try:
                self._execute(op, operands, resources, depth)
            except (TypeError, ValueError, IndexError) as e:
                # 피연산자가 잘못된 연산자는 건너뜀
                logger.debug("skipping operator %s: %s", op, e)
        return self.content

    def _execute(self, op: str, operands: List[Any], resources: Dict[str, Any], depth: int):
        gs = self.gs

        if op == 'q':
            self.gs_stack.append(gs.copy())
        elif op == 'Q':
            if self.gs_stack:
                self.gs = self.gs_stack.pop()
        elif op == 'cm':
            gs.ctm = mat_mul(_numbers(operands, 6), gs.ctm)

        elif op == 'BT':
            self.tm = IDENTITY
            self.tlm = IDENTITY
        elif op == 'Tf':
            name, size = operands[-2], operands[-1]
            gs.font = self.fonts.lookup(resources, str(name))
            gs.font_size = float(size)
        elif op == 'Tc':
            gs.char_spacing = float(operands[-1])
        elif op == 'Tw':
            gs.word_spacing = float(operands[-1])
        elif op == 'TL':
            gs.leading = float(operands[-1])
        elif op == 'Tz':
            gs.horizontal_scale = float(operands[-1])
        elif op == 'Ts':
            gs.rise = float(operands[-1])

        elif op == 'Td':
            tx, ty = _numbers(operands, 2)
            self._next_line(tx, ty)
        elif op == 'TD':
            tx, ty = _numbers(operands, 2)
            gs.leading = -ty
            self._next_line(tx, ty)
        elif op == 'Tm':
            self.tm = self.tlm = _numbers(operands, 6)
        elif op == 'T*':
            self._next_line(0, -gs.leading)

        elif op == 'Tj':
            self._show([operands[-1]])
        elif op == 'TJ':
            if isinstance(operands[-1], list):
                self._show(operands[-1])
        elif op == "'":
            self._next_line(0, -gs.leading)
            self._show([operands[-1]])
        elif op == '"':
            gs.word_spacing = float(operands[-3])
            gs.char_spacing = float(operands[-2])
            self._next_line(0, -gs.leading)
            self._show([operands[-1]])

        elif op == 'Do':
            self._do_xobject(str(operands[-1]), resources, depth)

    def _next_line(self, tx: float, ty: float):
        self.tm = self.tlm = mat_mul((1, 0, 0, 1, tx, ty), self.tlm)

    def _show(self, elements: List[Any]):
        """Tj/TJ - 텍스트 실행 하나당 TextItem 하나"""
        gs = self.gs
        font = gs.font
        start = mat_mul((1, 0, 0, 1, 0, gs.rise), mat_mul(self.tm, gs.ctm))
        scale = gs.horizontal_scale / 100.0

        parts: List[str] = []
        advance = 0.0
        for element in elements:
            if isinstance(element, CSToken):
                raw = element.value
                text = font.decode(raw) if font else basic_decode(raw)
                tx = self._string_advance(raw, font) * scale
                parts.append(text)
                advance += tx
                self.tm = mat_mul((1, 0, 0, 1, tx, 0), self.tm)
            elif isinstance(element, (int, float)) and not isinstance(element, bool):
                tx = -element / 1000.0 * gs.font_size * scale
                if abs(element) > TJ_SPACE_THRESHOLD and parts and not parts[-1].endswith(' '):
                    parts.append(' ')
                advance += tx
                self.tm = mat_mul((1, 0, 0, 1, tx, 0), self.tm)

        text = ''.join(parts)
        if not text:
            return

        device_scale = math.hypot(start[0], start[1])
        self.content.items.append(TextItem(
            text=text,
            x=start[4] - self.left,
            y=self.top - start[5],
            width=abs(advance) * device_scale,
            height=gs.font_size * device_scale,
            font_name=font.name if font else None,
        ))

    def _string_advance(self, raw: bytes, font: Optional[FontInfo]) -> float:
        """텍스트 공간 기준 문자열 폭 (수평 배율 적용 전)"""
        gs = self.gs
        total = 0.0
        if font is None:
            for b in raw:
                total += DEFAULT_GLYPH_WIDTH / 1000.0 * gs.font_size + gs.char_spacing
                if b == 32:
                    total += gs.word_spacing
            return total
        for code, nbytes in font.split_codes(raw):
            total += font.glyph_width(code) / 1000.0 * gs.font_size + gs.char_spacing
            if code == 32 and nbytes == 1:
                total += gs.word_spacing
        return total

    def _do_xobject(self, name: str, resources: Dict[str, Any], depth: int):
        xobjects = self.document.get(resources, 'XObject', {})
        if not isinstance(xobjects, dict):
            return
        ref = xobjects.get(name)
        xobj = self.document.resolve(ref)
        if not isinstance(xobj, PDFStream):
            return

        subtype = xobj.get('Subtype')
        if subtype == 'Image':
            self._place_image(name, xobj)
        elif subtype == 'Form':
            self._run_form(xobj, ref, resources, depth)

    def _place_image(self, name: str, stream: PDFStream):
        corners = [mat_mul((1, 0, 0, 1, x, y), self.gs.ctm)[4:] for x, y in
                   ((0, 0), (1, 0), (0, 1), (1, 1))]
        xs = [c[0] for c in corners]
        ys = [c[1] for c in corners]
        self.content.images.append(ImagePlacement(
            name=name,
            x=min(xs) - self.left,
            y=self.top - max(ys),
            width=max(xs) - min(xs),
            height=max(ys) - min(ys),
            stream=stream,
        ))

    def _run_form(self, form: PDFStream, ref: Any, resources: Dict[str, Any], depth: int):
        if depth >= MAX_FORM_DEPTH:
            logger.debug("form XObject nesting deeper than %d", MAX_FORM_DEPTH)
            return
        key = (ref.obj_num, ref.gen_num) if isinstance(ref, PDFRef) else id(form)
        if key in self._forms_active:
            logger.debug("recursive form XObject %r", key)
            return

        try:
            data = self.document.stream_data(form)
        except ValueError as e:
            logger.debug("form XObject undecodable: %s", e)
            return

        form_resources = self.document.get(form, 'Resources')
        if not isinstance(form_resources, dict):
            form_resources = resources

        saved = (self.gs, self.gs_stack, self.tm, self.tlm)
        self.gs = self.gs.copy()
        self.gs_stack = []
        matrix = self.document.resolve(form.get('Matrix'))
        if isinstance(matrix, list) and len(matrix) == 6:
            self.gs.ctm = mat_mul(tuple(float(as_number(self.document.resolve(v))) for v in matrix),
                                  self.gs.ctm)

        self._forms_active.append(key)
        try:
            self.run(data, form_resources, depth + 1)
        finally:
            self._forms_active.pop()
            self.gs, self.gs_stack, self.tm, self.tlm = saved


def _numbers(operands: List[Any], count: int) -> Tuple[float, ...]:
    values = operands[-count:]
    if len(values) < count:
        raise ValueError(f"expected {count} operands")
    return tuple(float(v) for v in values)


def extract_page(document, page, fonts: Optional[FontRegistry] = None) -> PageContent:
    """
    페이지 하나의 텍스트 조각과 이미지 배치 추출

    Raises:
        UnsupportedFilterError: 페이지 Content Stream 필터를 디코딩할 수 없음
    """
    if fonts is None:
        fonts = FontRegistry(document)
    data = document.page_contents(page)
    interpreter = ContentStreamInterpreter(document, fonts, page.media_box)
    return interpreter.run(data, page.resources)
