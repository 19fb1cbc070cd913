"""
PDF 구조 파서

1. 헤더 탐색 (앞 1024 바이트 안의 %PDF-x.y)
2. 마지막 startxref 에서 시작하는 xref 체인 (테이블/스트림/하이브리드, Prev)
3. 객체 파서 (dict, array, string, number, name, ref, stream)

객체 자체는 여기서 읽지 않는다. PDFDocument 가 필요할 때 lazily 파싱한다.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import MalformedPDFError
from .objects import PDFName, PDFRef, PDFStream
from .stream_decoder import StreamDecoder

logger = logging.getLogger(__name__)


class PDFTokenType(Enum):
    """PDF 토큰 타입"""
    NUMBER = "number"
    STRING = "string"          # (hello)
    HEX_STRING = "hex_string"  # <48656C6C6F>
    NAME = "name"              # /Type
    BOOL = "bool"
    NULL = "null"
    KEYWORD = "keyword"        # obj, endobj, stream, R, ...
    DICT_START = "dict_start"  # <<
    DICT_END = "dict_end"      # >>
    ARRAY_START = "array_start"  # [
    ARRAY_END = "array_end"      # ]


@dataclass
class PDFToken:
    """파싱된 토큰"""
    type: PDFTokenType
    value: Any
    pos: int  # 파일 내 위치


@dataclass(frozen=True)
class XRefEntry:
    """
    XRef 항목

    - 빈 항목: in_use=False
    - 파일 내 객체: offset + gen_num
    - 압축 객체: obj_stream_num + obj_stream_idx
    """
    offset: int = 0
    gen_num: int = 0
    in_use: bool = True
    compressed: bool = False
    obj_stream_num: int = 0
    obj_stream_idx: int = 0


# xref 스트림 사전에서 trailer 로 옮기지 않는 키
_XREF_STREAM_KEYS = {'Type', 'W', 'Index', 'Filter', 'DecodeParms', 'Length',
                     'Prev', 'XRefStm', 'DL', 'F', 'FFilter', 'FDecodeParms'}

_REGULAR = re.compile(rb'[^ \t\n\r\x00\x0c()<>\[\]{}/%]+')
_NUMBER = re.compile(rb'[+-]?(\d+\.?\d*|\.\d+)$')


class PDFLexer:
    """PDF 토크나이저 - 바이트 스트림을 토큰으로 변환"""

    WHITESPACE = b' \t\n\r\x00\x0c'
    DELIMITERS = b'()<>[]{}/%'

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos
        self.length = len(data)

    def peek(self, count: int = 1) -> bytes:
        return self.data[self.pos:self.pos + count]

    def skip_whitespace(self):
        """공백과 주석 스킵"""
        data = self.data
        while self.pos < self.length:
            ch = data[self.pos]
            if ch in self.WHITESPACE:
                self.pos += 1
            elif ch == 0x25:  # '%'
                while self.pos < self.length and data[self.pos] not in b'\r\n':
                    self.pos += 1
            else:
                break

    def read_token(self) -> Optional[PDFToken]:
        """다음 토큰 읽기. 끝이면 None."""
        self.skip_whitespace()
        if self.pos >= self.length:
            return None

        start_pos = self.pos
        ch = self.data[self.pos:self.pos + 1]

        if ch == b'<':
            if self.peek(2) == b'<<':
                self.pos += 2
                return PDFToken(PDFTokenType.DICT_START, "<<", start_pos)
            return self._read_hex_string(start_pos)

        if ch == b'>':
            if self.peek(2) == b'>>':
                self.pos += 2
                return PDFToken(PDFTokenType.DICT_END, ">>", start_pos)
            self.pos += 1
            raise ValueError(f"Unexpected '>' at position {start_pos}")

        if ch == b'[':
            self.pos += 1
            return PDFToken(PDFTokenType.ARRAY_START, "[", start_pos)
        if ch == b']':
            self.pos += 1
            return PDFToken(PDFTokenType.ARRAY_END, "]", start_pos)

        if ch in (b'{', b'}'):
            # PostScript 함수 본문
            self.pos += 1
            return PDFToken(PDFTokenType.KEYWORD, ch.decode('ascii'), start_pos)

        if ch == b'/':
            return self._read_name(start_pos)

        if ch == b'(':
            return self._read_string(start_pos)

        if ch == b')':
            self.pos += 1
            raise ValueError(f"Unbalanced ')' at position {start_pos}")

        return self._read_regular(start_pos)

    def _read_name(self, start_pos: int) -> PDFToken:
        """Name 토큰: /Type, /A#20B"""
        self.pos += 1
        match = _REGULAR.match(self.data, self.pos)
        raw = match.group(0) if match else b''
        self.pos += len(raw)

        if b'#' in raw:
            out = bytearray()
            i = 0
            while i < len(raw):
                if raw[i] == 0x23 and i + 3 <= len(raw) and _is_hex(raw[i + 1:i + 3]):
                    out.append(int(raw[i + 1:i + 3], 16))
                    i += 3
                else:
                    out.append(raw[i])
                    i += 1
            raw = bytes(out)

        return PDFToken(PDFTokenType.NAME, PDFName(raw.decode('utf-8', errors='replace')), start_pos)

    def _read_string(self, start_pos: int) -> PDFToken:
        """리터럴 문자열: (Hello (nested) \\n)"""
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
            if ch == 0x5C:  # backslash
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
                            octal = octal * 8 + (data[self.pos] - 0x30)
                            self.pos += 1
                        else:
                            break
                    result.append(octal & 0xFF)
                elif esc in (0x0D, 0x0A):
                    # 줄 연속
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

        return PDFToken(PDFTokenType.STRING, bytes(result), start_pos)

    def _read_hex_string(self, start_pos: int) -> PDFToken:
        """16진수 문자열: <48656C6C6F>"""
        self.pos += 1
        end = self.data.find(b'>', self.pos)
        if end == -1:
            end = self.length
        hex_str = bytes(b for b in self.data[self.pos:end] if b not in self.WHITESPACE)
        self.pos = min(end + 1, self.length)

        if not _is_hex(hex_str) and hex_str:
            raise ValueError(f"Invalid hex string at position {start_pos}")
        if len(hex_str) % 2 == 1:
            hex_str += b'0'
        return PDFToken(PDFTokenType.HEX_STRING, bytes.fromhex(hex_str.decode('ascii')), start_pos)

    def _read_regular(self, start_pos: int) -> PDFToken:
        """숫자 또는 키워드 (true, false, null, obj, R, ...)"""
        match = _REGULAR.match(self.data, self.pos)
        if not match:
            self.pos += 1
            raise ValueError(f"Unexpected character at position {start_pos}")
        raw = match.group(0)
        self.pos += len(raw)

        if _NUMBER.match(raw):
            text = raw.decode('ascii')
            if '.' in text:
                return PDFToken(PDFTokenType.NUMBER, float(text), start_pos)
            return PDFToken(PDFTokenType.NUMBER, int(text), start_pos)

        text = raw.decode('latin-1')
        if text == 'true':
            return PDFToken(PDFTokenType.BOOL, True, start_pos)
        if text == 'false':
            return PDFToken(PDFTokenType.BOOL, False, start_pos)
        if text == 'null':
            return PDFToken(PDFTokenType.NULL, None, start_pos)
        return PDFToken(PDFTokenType.KEYWORD, text, start_pos)


def _is_hex(data: bytes) -> bool:
    return bool(data) and all(c in b'0123456789ABCDEFabcdef' for c in data)


class ObjectParser:
    """
    토큰 → 객체 변환

    length_resolver 는 Length 가 간접 참조일 때 실제 값을 돌려주는 콜백.
    배열/딕셔너리 중첩이 MAX_NESTING 을 넘으면 ValueError.
    """

    MAX_NESTING = 200

    def __init__(self, data: bytes, length_resolver: Optional[Callable[[PDFRef], Any]] = None):
        self.data = data
        self.lexer = PDFLexer(data)
        self.length_resolver = length_resolver
        self._depth = 0

    def parse_value_at(self, pos: int) -> Any:
        self.lexer.pos = pos
        return self.parse_value()

    def parse_indirect_at(self, offset: int) -> Tuple[int, int, Any]:
        """
        offset 위치의 'N G obj ... endobj' 파싱

        Returns:
            (obj_num, gen_num, value) - value 는 스트림이면 PDFStream
        """
        self.lexer.pos = offset
        num_tok = self.lexer.read_token()
        gen_tok = self.lexer.read_token()
        obj_tok = self.lexer.read_token()
        if not (num_tok and gen_tok and obj_tok) or \
                num_tok.type != PDFTokenType.NUMBER or gen_tok.type != PDFTokenType.NUMBER or \
                obj_tok.type != PDFTokenType.KEYWORD or obj_tok.value != 'obj':
            raise ValueError(f"No object header at offset {offset}")

        obj_num, gen_num = int(num_tok.value), int(gen_tok.value)
        value = self.parse_value()

        self.lexer.skip_whitespace()
        if isinstance(value, dict) and self.data.startswith(b'stream', self.lexer.pos):
            value = self._parse_stream(value, obj_num, gen_num)

        return obj_num, gen_num, value

    def parse_value(self) -> Any:
        """값 하나 파싱 (재귀)"""
        token = self.lexer.read_token()
        if token is None:
            return None
        return self._value_from_token(token)

    def _value_from_token(self, token: PDFToken) -> Any:
        if token.type in (PDFTokenType.DICT_START, PDFTokenType.ARRAY_START):
            if self._depth >= self.MAX_NESTING:
                raise ValueError(f"Nesting deeper than {self.MAX_NESTING} at {token.pos}")
            self._depth += 1
            try:
                if token.type == PDFTokenType.DICT_START:
                    return self._parse_dict()
                return self._parse_array()
            finally:
                self._depth -= 1

        if token.type == PDFTokenType.NUMBER:
            # Reference 체크: number number R
            if isinstance(token.value, int) and token.value >= 0:
                saved_pos = self.lexer.pos
                try:
                    token2 = self.lexer.read_token()
                    if token2 and token2.type == PDFTokenType.NUMBER and isinstance(token2.value, int):
                        token3 = self.lexer.read_token()
                        if token3 and token3.type == PDFTokenType.KEYWORD and token3.value == 'R':
                            return PDFRef(token.value, token2.value)
                except ValueError:
                    pass
                self.lexer.pos = saved_pos
            return token.value

        if token.type in (PDFTokenType.STRING, PDFTokenType.HEX_STRING, PDFTokenType.NAME,
                          PDFTokenType.BOOL, PDFTokenType.NULL):
            return token.value

        if token.type == PDFTokenType.KEYWORD:
            # 값 자리에 온 키워드 (endobj 등) - 손상된 파일에서 발생
            return None

        raise ValueError(f"Unexpected token: {token}")

    def _parse_dict(self) -> Dict[str, Any]:
        result = {}
        while True:
            token = self.lexer.read_token()
            if token is None:
                raise ValueError("Unexpected end of data in dictionary")
            if token.type == PDFTokenType.DICT_END:
                break
            if token.type != PDFTokenType.NAME:
                if token.type == PDFTokenType.KEYWORD and token.value in ('endobj', 'stream'):
                    raise ValueError(f"Unterminated dictionary at {token.pos}")
                # 키가 아닌 토큰은 건너뜀
                continue
            key = str(token.value)
            value_token = self.lexer.read_token()
            if value_token is None:
                raise ValueError("Unexpected end of data in dictionary")
            if value_token.type == PDFTokenType.DICT_END:
                result[key] = None
                break
            result[key] = self._value_from_token(value_token)
        return result

    def _parse_array(self) -> List[Any]:
        result = []
        while True:
            token = self.lexer.read_token()
            if token is None:
                raise ValueError("Unexpected end of data in array")
            if token.type == PDFTokenType.ARRAY_END:
                break
            result.append(self._value_from_token(token))
        return result

    def _parse_stream(self, attrs: Dict[str, Any], obj_num: int, gen_num: int) -> PDFStream:
        """stream ... endstream 읽기"""
        pos = self.lexer.pos + 6
        if self.data[pos:pos + 2] == b'\r\n':
            pos += 2
        elif self.data[pos:pos + 1] in (b'\n', b'\r'):
            pos += 1

        length = attrs.get('Length')
        if isinstance(length, PDFRef):
            length = self.length_resolver(length) if self.length_resolver else None

        raw = None
        if isinstance(length, int) and not isinstance(length, bool) and length >= 0:
            end = pos + length
            tail = self.data[end:end + 32].lstrip(b' \t\r\n\x00\x0c')
            if tail.startswith(b'endstream'):
                raw = self.data[pos:end]

        if raw is None:
            # Length 가 없거나 틀림 - endstream 으로 찾기
            end = self.data.find(b'endstream', pos)
            if end == -1:
                end = len(self.data)
            else:
                if self.data[end - 2:end] == b'\r\n':
                    end -= 2
                elif self.data[end - 1:end] in (b'\n', b'\r'):
                    end -= 1
            logger.debug("stream %d %d: Length unusable, using endstream", obj_num, gen_num)
            raw = self.data[pos:end]

        self.lexer.pos = pos + len(raw)
        return PDFStream(attrs=attrs, raw=raw, obj_num=obj_num, gen_num=gen_num)


class PDFParser:
    """
    PDF 파서 - 헤더와 xref 체인을 읽고 PDFDocument 를 만든다

    >>> doc = PDFParser(data).parse()
    >>> doc.get_object(1)
    """

    def __init__(self, data: bytes, password: str = ""):
        self.data = data
        self.password = password
        self.objects = ObjectParser(data)
        self.version = "1.4"
        self.xref: Dict[int, XRefEntry] = {}
        self.trailer: Dict[str, Any] = {}

    def parse(self):
        """헤더, xref, trailer 를 읽고 보안 핸들러까지 설정한 문서"""
        from .document import PDFDocument

        self._parse_header()
        self._parse_xref_chain()

        if 'Root' not in self.trailer:
            raise MalformedPDFError("Invalid PDF: trailer has no Root")

        document = PDFDocument(self.data, self.version, self.xref, self.trailer)
        document.open_security(self.password)
        return document

    def _parse_header(self):
        match = re.search(rb'%PDF-(\d+\.\d+)', self.data[:1024])
        if not match:
            logger.warning("PDF header not found, assuming version 1.4")
            return
        self.version = match.group(1).decode('ascii')

    def _find_startxref(self) -> int:
        pos = self.data.rfind(b'startxref')
        if pos == -1:
            raise MalformedPDFError("Invalid PDF: missing startxref")
        match = re.match(rb'startxref\s+(\d+)', self.data[pos:pos + 64])
        if not match:
            raise MalformedPDFError("Invalid PDF: startxref has no offset")
        return int(match.group(1))

    def _parse_xref_chain(self):
        """startxref 부터 Prev 를 따라가며 xref 섹션을 병합 (최신 우선)"""
        offset: Optional[int] = self._find_startxref()
        visited = set()
        first = True

        while offset is not None:
            if offset in visited:
                logger.debug("xref Prev loop at offset %d", offset)
                break
            visited.add(offset)

            try:
                entries, section_trailer = self._parse_section(offset)
            except (ValueError, IndexError, MalformedPDFError) as e:
                if first:
                    raise MalformedPDFError(f"Invalid PDF: cannot read xref at offset {offset}",
                                            original_error=e) from e
                logger.warning("ignoring unreadable previous xref section at %d: %s", offset, e)
                break
            first = False

            for obj_num, entry in entries.items():
                if obj_num not in self.xref:
                    self.xref[obj_num] = entry
            for key, value in section_trailer.items():
                if key not in _XREF_STREAM_KEYS and key not in self.trailer:
                    self.trailer[key] = value

            prev = section_trailer.get('Prev')
            offset = int(prev) if isinstance(prev, (int, float)) and not isinstance(prev, bool) else None

    def _parse_section(self, offset: int) -> Tuple[Dict[int, XRefEntry], Dict[str, Any]]:
        if offset < 0 or offset >= len(self.data):
            raise ValueError(f"xref offset {offset} out of range")
        lexer = PDFLexer(self.data, offset)
        lexer.skip_whitespace()
        if self.data.startswith(b'xref', lexer.pos):
            entries, trailer = self._parse_xref_table(lexer.pos)
            stm = trailer.get('XRefStm')
            if isinstance(stm, int) and not isinstance(stm, bool):
                try:
                    stm_entries, _ = self._parse_xref_stream(stm)
                except (ValueError, IndexError) as e:
                    logger.debug("hybrid XRefStm at %d unreadable: %s", stm, e)
                    stm_entries = {}
                # 하이브리드: 스트림 항목은 같은 섹션의 빈 항목만 채운다
                for obj_num, entry in stm_entries.items():
                    current = entries.get(obj_num)
                    if current is None or not current.in_use:
                        entries[obj_num] = entry
            return entries, trailer
        return self._parse_xref_stream(lexer.pos)

    def _parse_xref_table(self, offset: int) -> Tuple[Dict[int, XRefEntry], Dict[str, Any]]:
        """기존 xref 테이블 (토큰 단위로 읽어서 19/20 바이트 변형 모두 허용)"""
        lexer = PDFLexer(self.data, offset + 4)
        entries: Dict[int, XRefEntry] = {}

        while True:
            token = lexer.read_token()
            if token is None:
                raise ValueError("xref table without trailer")
            if token.type == PDFTokenType.KEYWORD and token.value == 'trailer':
                break
            if token.type != PDFTokenType.NUMBER:
                raise ValueError(f"unexpected token in xref table: {token.value!r}")

            start_obj = int(token.value)
            count_tok = lexer.read_token()
            if count_tok is None or count_tok.type != PDFTokenType.NUMBER:
                raise ValueError("xref subsection without count")

            for i in range(int(count_tok.value)):
                off_tok = lexer.read_token()
                gen_tok = lexer.read_token()
                flag_tok = lexer.read_token()
                if not (off_tok and gen_tok and flag_tok) or flag_tok.value not in ('n', 'f'):
                    raise ValueError(f"bad xref entry for object {start_obj + i}")
                obj_num = start_obj + i
                if obj_num in entries:
                    continue
                entries[obj_num] = XRefEntry(
                    offset=int(off_tok.value),
                    gen_num=int(gen_tok.value),
                    in_use=(flag_tok.value == 'n'),
                )

        trailer = self.objects.parse_value_at(lexer.pos)
        if not isinstance(trailer, dict):
            raise ValueError("trailer is not a dictionary")
        return entries, trailer

    def _parse_xref_stream(self, offset: int) -> Tuple[Dict[int, XRefEntry], Dict[str, Any]]:
        """xref 스트림 (PDF 1.5+). xref 스트림은 암호화되지 않는다."""
        _, _, stream = self.objects.parse_indirect_at(offset)
        if not isinstance(stream, PDFStream) or stream.get('Type') != 'XRef':
            raise ValueError(f"no xref stream at offset {offset}")

        data = StreamDecoder.decode(stream.raw, stream.get('Filter'), stream.get('DecodeParms'))

        w = [int(x) for x in stream.get('W', [1, 2, 1])]
        while len(w) < 3:
            w.append(0)
        w0, w1, w2 = w[:3]
        entry_size = w0 + w1 + w2
        if entry_size <= 0:
            raise ValueError("xref stream W has zero width")

        size = int(stream.get('Size', 0))
        index = stream.get('Index') or [0, size]

        entries: Dict[int, XRefEntry] = {}
        pos = 0
        for i in range(0, len(index) - 1, 2):
            start_obj, count = int(index[i]), int(index[i + 1])
            for j in range(count):
                if pos + entry_size > len(data):
                    break
                field0 = _read_int(data, pos, w0) if w0 > 0 else 1
                field1 = _read_int(data, pos + w0, w1)
                field2 = _read_int(data, pos + w0 + w1, w2)
                pos += entry_size

                obj_num = start_obj + j
                if obj_num in entries:
                    continue
                if field0 == 0:
                    entries[obj_num] = XRefEntry(offset=field1, gen_num=field2, in_use=False)
                elif field0 == 1:
                    entries[obj_num] = XRefEntry(offset=field1, gen_num=field2)
                elif field0 == 2:
                    entries[obj_num] = XRefEntry(compressed=True, obj_stream_num=field1,
                                                 obj_stream_idx=field2)
                # 그 외 타입은 null 참조로 취급

        return entries, dict(stream.attrs)


def _read_int(data: bytes, offset: int, length: int) -> int:
    """big-endian 정수"""
    if length == 0:
        return 0
    return int.from_bytes(data[offset:offset + length], 'big')


def parse_pdf(filepath: str, password: str = ""):
    """PDF 파일 파싱"""
    with open(filepath, 'rb') as f:
        data = f.read()
    return PDFParser(data, password=password).parse()
