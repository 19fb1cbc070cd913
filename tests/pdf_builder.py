"""
테스트용 최소 PDF 생성기

같은 객체 집합을 세 가지 xref 형태로 쓸 수 있다:
- classic: xref 테이블 + trailer
- xref-stream: xref 스트림 (PDF 1.5)
- object-stream: 스트림이 아닌 객체를 ObjStm 에 넣고 xref 스트림으로 인덱싱

오프셋은 실제로 쓴 위치에서 계산한다.
"""

import re
import zlib
from io import BytesIO
from typing import Dict, List, Optional, Sequence, Tuple, Union

CLASSIC = 'classic'
XREF_STREAM = 'xref-stream'
OBJECT_STREAM = 'object-stream'
MODES = (CLASSIC, XREF_STREAM, OBJECT_STREAM)

PAGE_WIDTH = 612
PAGE_HEIGHT = 792

Body = Union[str, bytes]


def _bytes(body: Body) -> bytes:
    return body.encode('latin-1') if isinstance(body, str) else body


def escape_string(text: str) -> str:
    return text.replace('\\', '\\\\').replace('(', '\\(').replace(')', '\\)')


class PDFBuilder:
    """객체 번호는 1 부터 순서대로"""

    def __init__(self, version: str = '1.7'):
        self.version = version
        self.objects: Dict[int, Tuple[bytes, bool]] = {}
        self._next = 1

    def reserve(self) -> int:
        num = self._next
        self._next += 1
        return num

    def set(self, num: int, body: Body, is_stream: bool = False):
        self.objects[num] = (_bytes(body), is_stream)

    def add(self, body: Body) -> int:
        num = self.reserve()
        self.set(num, body)
        return num

    def add_stream(self, data: bytes, attrs: str = '', compress: bool = False) -> int:
        if compress:
            data = zlib.compress(data)
            attrs = (attrs + ' /Filter /FlateDecode').strip()
        head = f'<< /Length {len(data)} {attrs} >>\nstream\n'.encode('latin-1')
        num = self.reserve()
        self.set(num, head + data + b'\nendstream', is_stream=True)
        return num

    # ------------------------------------------------------------------

    def _header(self) -> bytearray:
        return bytearray(b'%PDF-' + self.version.encode('ascii') + b'\n%\xe2\xe3\xcf\xd3\n')

    @staticmethod
    def _write_object(out: bytearray, num: int, body: bytes) -> int:
        offset = len(out)
        out += b'%d 0 obj\n' % num + body + b'\nendobj\n'
        return offset

    def _trailer_refs(self, root: int, info: Optional[int]) -> str:
        refs = f' /Root {root} 0 R'
        if info is not None:
            refs += f' /Info {info} 0 R'
        return refs

    def build(self, root: int, info: Optional[int] = None, mode: str = CLASSIC) -> bytes:
        if mode == CLASSIC:
            return self._build_classic(root, info)
        if mode == XREF_STREAM:
            return self._build_xref_stream(root, info)
        if mode == OBJECT_STREAM:
            return self._build_object_stream(root, info)
        raise ValueError(mode)

    def _build_classic(self, root: int, info: Optional[int]) -> bytes:
        out = self._header()
        offsets = {num: self._write_object(out, num, body)
                   for num, (body, _) in sorted(self.objects.items())}
        size = max(offsets) + 1
        xref_offset = len(out)
        out += b'xref\n0 %d\n' % size
        out += b'0000000000 65535 f \n'
        for num in range(1, size):
            if num in offsets:
                out += b'%010d 00000 n \n' % offsets[num]
            else:
                out += b'0000000000 00000 f \n'
        out += b'trailer\n<< /Size %d' % size + self._trailer_refs(root, info).encode() + b' >>\n'
        out += b'startxref\n' + str(xref_offset).encode() + b'\n%%EOF\n'
        return bytes(out)

    @staticmethod
    def _write_xref_stream(out: bytearray, entries: Dict[int, Tuple[int, int, int]],
                           xref_num: int, trailer_refs: str):
        offset = len(out)
        entries[xref_num] = (1, offset, 0)
        size = xref_num + 1
        rows = bytearray()
        for num in range(size):
            kind, field1, field2 = entries.get(num, (0, 0, 65535 if num == 0 else 0))
            rows += bytes([kind]) + field1.to_bytes(4, 'big') + field2.to_bytes(2, 'big')
        data = zlib.compress(bytes(rows))
        head = (f'<< /Type /XRef /Size {size} /W [1 4 2]{trailer_refs} '
                f'/Filter /FlateDecode /Length {len(data)} >>\nstream\n').encode('latin-1')
        out += b'%d 0 obj\n' % xref_num + head + data + b'\nendstream\nendobj\n'
        out += b'startxref\n' + str(offset).encode() + b'\n%%EOF\n'

    def _build_xref_stream(self, root: int, info: Optional[int]) -> bytes:
        out = self._header()
        entries = {num: (1, self._write_object(out, num, body), 0)
                   for num, (body, _) in sorted(self.objects.items())}
        self._write_xref_stream(out, entries, max(self.objects) + 1, self._trailer_refs(root, info))
        return bytes(out)

    def _build_object_stream(self, root: int, info: Optional[int]) -> bytes:
        out = self._header()
        entries: Dict[int, Tuple[int, int, int]] = {}
        objstm_num = max(self.objects) + 1

        packed = [(num, body) for num, (body, is_stream) in sorted(self.objects.items())
                  if not is_stream]
        header_parts = []
        chunks = []
        pos = 0
        for index, (num, body) in enumerate(packed):
            header_parts.append(f'{num} {pos}')
            chunk = body + b'\n'
            chunks.append(chunk)
            pos += len(chunk)
            entries[num] = (2, objstm_num, index)
        header = ' '.join(header_parts).encode('ascii') + b'\n'
        data = zlib.compress(header + b''.join(chunks))

        for num, (body, is_stream) in sorted(self.objects.items()):
            if is_stream:
                entries[num] = (1, self._write_object(out, num, body), 0)
        objstm = (f'<< /Type /ObjStm /N {len(packed)} /First {len(header)} '
                  f'/Filter /FlateDecode /Length {len(data)} >>\nstream\n').encode('latin-1')
        entries[objstm_num] = (1, self._write_object(out, objstm_num, objstm + data + b'\nendstream'), 0)

        self._write_xref_stream(out, entries, objstm_num + 1, self._trailer_refs(root, info))
        return bytes(out)


def append_update(data: bytes, objects: Dict[int, Body], root: int, size: int) -> bytes:
    """증분 업데이트: 객체를 덧붙이고 Prev 로 이전 xref 를 가리키는 새 xref 섹션"""
    prev = int(re.findall(rb'startxref\s+(\d+)', data)[-1])
    out = bytearray(data)
    offsets = {}
    for num, body in sorted(objects.items()):
        offsets[num] = PDFBuilder._write_object(out, num, _bytes(body))
    xref_offset = len(out)
    out += b'xref\n'
    for num in sorted(offsets):
        out += b'%d 1\n' % num + b'%010d 00000 n \n' % offsets[num]
    out += b'trailer\n<< /Size %d /Root %d 0 R /Prev %d >>\n' % (size, root, prev)
    out += b'startxref\n' + str(xref_offset).encode() + b'\n%%EOF\n'
    return bytes(out)


# ----------------------------------------------------------------------
# 텍스트 페이지
# ----------------------------------------------------------------------

# (텍스트, x, 위에서부터 y, 크기[, 폰트])
TextSpec = Tuple


def text_ops(items: Sequence[TextSpec]) -> bytes:
    ops = []
    for spec in items:
        text, x, y_top, size = spec[:4]
        font = spec[4] if len(spec) > 4 else 'F1'
        ops.append(f'BT /{font} {size} Tf 1 0 0 1 {x} {PAGE_HEIGHT - y_top} Tm '
                   f'({escape_string(text)}) Tj ET')
    return '\n'.join(ops).encode('latin-1')


def build_text_pdf(pages: Sequence[Sequence[TextSpec]], mode: str = CLASSIC,
                   title: Optional[str] = None, compress: bool = False,
                   raw_contents: Optional[List[bytes]] = None,
                   info_body: Optional[str] = None) -> bytes:
    """
    페이지마다 텍스트 조각을 그린 PDF

    F1 = Helvetica, F2 = Helvetica-Bold.
    raw_contents 를 주면 pages 대신 그 Content Stream 을 그대로 쓴다.
    info_body 를 주면 title 대신 그 문자열을 Info 객체로 쓴다.
    """
    builder = PDFBuilder()
    regular = builder.add('<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>')
    bold = builder.add('<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica-Bold >>')
    pages_num = builder.reserve()

    contents = raw_contents if raw_contents is not None else [text_ops(items) for items in pages]
    kids = []
    for content in contents:
        stream = builder.add_stream(content, compress=compress)
        kids.append(builder.add(
            f'<< /Type /Page /Parent {pages_num} 0 R /MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] '
            f'/Resources << /Font << /F1 {regular} 0 R /F2 {bold} 0 R >> >> '
            f'/Contents {stream} 0 R >>'))
    builder.set(pages_num, '<< /Type /Pages /Kids [%s] /Count %d >>'
                % (' '.join(f'{k} 0 R' for k in kids), len(kids)))
    root = builder.add(f'<< /Type /Catalog /Pages {pages_num} 0 R >>')
    info = None
    if info_body is not None:
        info = builder.add(info_body)
    elif title:
        info = builder.add(f'<< /Title ({escape_string(title)}) >>')
    return builder.build(root, info=info, mode=mode)


def encrypt_pdf(data: bytes, user_password: str = '', owner_password: str = 'owner',
                algorithm: str = 'AES-128') -> bytes:
    """pypdf 로 암호화한 사본"""
    from pypdf import PdfReader, PdfWriter

    writer = PdfWriter(clone_from=PdfReader(BytesIO(data)))
    writer.encrypt(user_password=user_password, owner_password=owner_password,
                   algorithm=algorithm)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()
