"""
PDF 문서 - 지연(lazy) 객체 해석

- get_object(): xref 로 객체를 찾아 파싱, 복호화, 캐시
- 해석 중인 참조를 다시 만나면 None (순환 참조 안전)
- 압축 객체는 ObjStm 컨테이너를 한 번만 디코딩해서 인덱싱
- pages(): 페이지 트리 순회 (Resources/MediaBox/CropBox/Rotate 상속)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .objects import ObjectKind, PDFRef, PDFStream, as_number, decode_text_string, kind_of
from .parser import ObjectParser, PDFLexer, XRefEntry
from .security import SecurityHandler, detect_encryption
from .stream_decoder import StreamDecoder

logger = logging.getLogger(__name__)

INHERITABLE_PAGE_KEYS = ('Resources', 'MediaBox', 'CropBox', 'Rotate')
DEFAULT_MEDIA_BOX = [0, 0, 612, 792]
MAX_MATERIALIZE_DEPTH = 64


@dataclass
class PDFPage:
    """페이지 트리의 잎 (상속 속성 반영)"""
    index: int
    obj: Dict[str, Any]
    resources: Dict[str, Any] = field(default_factory=dict)
    media_box: List[float] = field(default_factory=lambda: list(DEFAULT_MEDIA_BOX))
    rotate: int = 0
    ref: Optional[PDFRef] = None

    @property
    def width(self) -> float:
        return abs(self.media_box[2] - self.media_box[0])

    @property
    def height(self) -> float:
        return abs(self.media_box[3] - self.media_box[1])


class PDFDocument:
    """파싱된 PDF 문서"""

    def __init__(self, data: bytes, version: str, xref: Dict[int, XRefEntry],
                 trailer: Dict[str, Any]):
        self.data = data
        self.version = version
        self.xref = xref
        self.trailer = trailer
        self.security: Optional[SecurityHandler] = None

        self._cache: Dict[Tuple[int, int], Any] = {}
        self._resolving: Set[int] = set()
        self._objstm_cache: Dict[int, Dict[int, Any]] = {}
        self._decoded: Dict[int, bytes] = {}
        self._encrypt_obj_num: Optional[int] = None
        self._parser = ObjectParser(data, length_resolver=self._resolve_length)

    # ------------------------------------------------------------------
    # 보안
    # ------------------------------------------------------------------

    def open_security(self, password: str = ""):
        """Encrypt 사전이 있으면 보안 핸들러 설정"""
        encrypt_ref = self.trailer.get('Encrypt')
        if isinstance(encrypt_ref, PDFRef):
            self._encrypt_obj_num = encrypt_ref.obj_num

        encrypt = detect_encryption(self.trailer, self.materialize)
        if encrypt is None:
            return

        id_array = self.resolve(self.trailer.get('ID'))
        id0 = b''
        if isinstance(id_array, list) and id_array and isinstance(id_array[0], (bytes, bytearray)):
            id0 = bytes(id_array[0])

        self.security = SecurityHandler.from_document(encrypt, id0, password)
        # 보안 설정 전에 읽은 객체는 복호화되지 않은 상태
        self._cache.clear()
        self._objstm_cache.clear()
        self._decoded.clear()

    @property
    def is_encrypted(self) -> bool:
        return self.security is not None

    # ------------------------------------------------------------------
    # 객체 해석
    # ------------------------------------------------------------------

    def get_object(self, obj_num: int, gen_num: Optional[int] = None) -> Any:
        """
        간접 객체 조회

        없는 객체, free 객체, 파싱 실패, 해석 중인 객체는 None.
        """
        entry = self.xref.get(obj_num)
        if entry is None or not entry.in_use:
            return None
        gen = 0 if entry.compressed else entry.gen_num
        key = (obj_num, gen)
        if key in self._cache:
            return self._cache[key]
        if obj_num in self._resolving:
            logger.debug("reference cycle at object %d", obj_num)
            return None

        self._resolving.add(obj_num)
        try:
            if entry.compressed:
                value = self._load_compressed(obj_num, entry)
            else:
                value = self._load_direct(obj_num, entry)
        finally:
            self._resolving.discard(obj_num)

        self._cache[key] = value
        return value

    def _load_direct(self, obj_num: int, entry: XRefEntry) -> Any:
        try:
            num, gen, value = self._parser.parse_indirect_at(entry.offset)
            if num != obj_num:
                raise ValueError(f"offset {entry.offset} holds object {num}")
        except (ValueError, IndexError) as e:
            value = self._scan_for_object(obj_num, entry.gen_num)
            if value is None:
                logger.debug("object %d unreadable: %s", obj_num, e)
                return None
            gen = entry.gen_num

        if self.security is not None and obj_num != self._encrypt_obj_num:
            value = self.security.decrypt_object(value, obj_num, gen)
        return value

    def _scan_for_object(self, obj_num: int, gen_num: int) -> Any:
        """xref 오프셋이 틀린 경우 'N G obj' 를 직접 찾는다"""
        pattern = re.compile(rb'(?<![0-9])%d\s+%d\s+obj\b' % (obj_num, gen_num))
        matches = list(pattern.finditer(self.data))
        for match in reversed(matches):
            try:
                num, _, value = self._parser.parse_indirect_at(match.start())
            except (ValueError, IndexError):
                continue
            if num == obj_num:
                logger.debug("object %d recovered by scanning", obj_num)
                return value
        return None

    def _load_compressed(self, obj_num: int, entry: XRefEntry) -> Any:
        container = self._objstm_cache.get(entry.obj_stream_num)
        if container is None:
            container = self._parse_object_stream(entry.obj_stream_num)
            self._objstm_cache[entry.obj_stream_num] = container
        # ObjStm 안의 객체는 컨테이너가 이미 복호화됨
        return container.get(obj_num)

    def _parse_object_stream(self, stream_num: int) -> Dict[int, Any]:
        stream = self.get_object(stream_num)
        if not isinstance(stream, PDFStream) or stream.get('Type') != 'ObjStm':
            logger.debug("object stream %d missing", stream_num)
            return {}
        try:
            data = self.stream_data(stream)
        except ValueError as e:
            logger.debug("object stream %d undecodable: %s", stream_num, e)
            return {}

        n = int(as_number(self.resolve(stream.get('N')), 0))
        first = int(as_number(self.resolve(stream.get('First')), 0))

        header = PDFLexer(data[:first])
        offsets: List[Tuple[int, int]] = []
        for _ in range(n):
            num_tok = header.read_token()
            off_tok = header.read_token()
            if num_tok is None or off_tok is None:
                break
            offsets.append((int(num_tok.value), int(off_tok.value)))

        objects: Dict[int, Any] = {}
        parser = ObjectParser(data)
        for num, rel in offsets:
            if num in objects:
                continue
            try:
                objects[num] = parser.parse_value_at(first + rel)
            except (ValueError, IndexError) as e:
                logger.debug("object %d in stream %d unreadable: %s", num, stream_num, e)
                objects[num] = None
        return objects

    def _resolve_length(self, ref: PDFRef) -> Any:
        value = self.get_object(ref.obj_num, ref.gen_num)
        return value if isinstance(value, int) else None

    def resolve(self, value: Any) -> Any:
        """참조를 따라가 실제 값 반환"""
        depth = 0
        while isinstance(value, PDFRef) and depth < 32:
            value = self.get_object(value.obj_num, value.gen_num)
            depth += 1
        return value

    def get(self, container: Any, key: str, default: Any = None) -> Any:
        """container[key] 를 해석해서 반환"""
        if isinstance(container, (dict, PDFStream)):
            value = self.resolve(container.get(key))
            return default if value is None else value
        return default

    def stream_data(self, stream: PDFStream) -> bytes:
        """
        필터 체인을 적용한 스트림 내용

        Raises:
            UnsupportedFilterError: 알 수 없는 필터
        """
        cache_key = id(stream)
        cached = self._decoded.get(cache_key)
        if cached is not None:
            return cached
        filters = self.resolve(stream.get('Filter'))
        if isinstance(filters, list):
            filters = [self.resolve(f) for f in filters]
        params = self.resolve(stream.get('DecodeParms'))
        if isinstance(params, list):
            params = [self.resolve(p) for p in params]
        if isinstance(params, dict):
            params = {k: self.resolve(v) for k, v in params.items()}
        elif isinstance(params, list):
            params = [{k: self.resolve(v) for k, v in p.items()} if isinstance(p, dict) else p
                      for p in params]

        data = StreamDecoder.decode(stream.raw, filters, params)
        self._decoded[cache_key] = data
        # stream 객체는 캐시에 살아 있으므로 id() 가 재사용되지 않는다
        return data

    def materialize(self, value: Any, _depth: int = 0, _seen: Optional[Set[int]] = None) -> Any:
        """
        참조를 재귀적으로 풀어 순수 Python 값으로 변환

        스트림은 {"attrs": ..., "data": 디코딩된 바이트} 가 된다.
        """
        if _seen is None:
            _seen = set()
        if _depth > MAX_MATERIALIZE_DEPTH:
            return None

        kind = kind_of(value)
        if kind is ObjectKind.REFERENCE:
            if value.obj_num in _seen:
                return None
            _seen = _seen | {value.obj_num}
            return self.materialize(self.get_object(value.obj_num, value.gen_num), _depth + 1, _seen)
        if kind is ObjectKind.ARRAY:
            return [self.materialize(item, _depth + 1, _seen) for item in value]
        if kind is ObjectKind.DICTIONARY:
            return {k: self.materialize(v, _depth + 1, _seen) for k, v in value.items()}
        if kind is ObjectKind.STREAM:
            try:
                data = self.stream_data(value)
            except ValueError as e:
                logger.debug("stream not decodable during materialize: %s", e)
                data = value.raw
            return {'attrs': self.materialize(value.attrs, _depth + 1, _seen), 'data': data}
        if kind in (ObjectKind.NULL, ObjectKind.BOOLEAN, ObjectKind.NUMBER,
                    ObjectKind.STRING, ObjectKind.NAME):
            return value
        raise TypeError(f"unhandled object kind {kind}")

    # ------------------------------------------------------------------
    # 문서 구조
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> Dict[str, Any]:
        root = self.resolve(self.trailer.get('Root'))
        return root if isinstance(root, dict) else {}

    @property
    def info(self) -> Dict[str, Any]:
        info = self.resolve(self.trailer.get('Info'))
        return info if isinstance(info, dict) else {}

    @property
    def title(self) -> str:
        return decode_text_string(self.resolve(self.info.get('Title'))).strip()

    @property
    def page_count(self) -> int:
        return sum(1 for _ in self.iter_pages())

    def pages(self) -> List[PDFPage]:
        return list(self.iter_pages())

    def iter_pages(self) -> Iterator[PDFPage]:
        """페이지 트리를 문서 순서대로 순회"""
        root_ref = self.catalog.get('Pages')
        root = self.resolve(root_ref)
        if not isinstance(root, dict):
            logger.warning("document has no page tree")
            return

        visited: Set[int] = set()
        index = 0
        # (node, ref, inherited)
        stack = [(root, root_ref if isinstance(root_ref, PDFRef) else None, {})]
        while stack:
            node, ref, inherited = stack.pop()
            if ref is not None:
                if ref.obj_num in visited:
                    logger.debug("page tree cycle at object %d", ref.obj_num)
                    continue
                visited.add(ref.obj_num)

            attrs = dict(inherited)
            for key in INHERITABLE_PAGE_KEYS:
                if key in node:
                    attrs[key] = node[key]

            node_type = node.get('Type')
            kids = self.resolve(node.get('Kids'))
            if node_type == 'Pages' or (node_type is None and isinstance(kids, list)):
                if not isinstance(kids, list):
                    continue
                children = []
                for kid_ref in kids:
                    kid = self.resolve(kid_ref)
                    if isinstance(kid, dict):
                        children.append((kid, kid_ref if isinstance(kid_ref, PDFRef) else None, attrs))
                stack.extend(reversed(children))
                continue

            yield self._make_page(index, node, ref, attrs)
            index += 1

    def _make_page(self, index: int, node: Dict[str, Any], ref: Optional[PDFRef],
                   attrs: Dict[str, Any]) -> PDFPage:
        resources = self.resolve(attrs.get('Resources'))
        box = self.resolve(attrs.get('MediaBox'))
        if isinstance(box, list) and len(box) == 4:
            media_box = [float(as_number(self.resolve(v))) for v in box]
            if media_box[2] - media_box[0] == 0 or media_box[3] - media_box[1] == 0:
                media_box = list(DEFAULT_MEDIA_BOX)
        else:
            media_box = list(DEFAULT_MEDIA_BOX)
        rotate = int(as_number(self.resolve(attrs.get('Rotate')), 0))
        return PDFPage(
            index=index,
            obj=node,
            resources=resources if isinstance(resources, dict) else {},
            media_box=media_box,
            rotate=rotate % 360,
            ref=ref,
        )

    def page_contents(self, page: PDFPage) -> bytes:
        """페이지 Contents (배열이면 이어붙임)"""
        contents = self.resolve(page.obj.get('Contents'))
        if contents is None:
            return b''
        streams = contents if isinstance(contents, list) else [contents]
        parts = []
        for item in streams:
            stream = self.resolve(item)
            if isinstance(stream, PDFStream):
                parts.append(self.stream_data(stream))
        return b'\n'.join(parts)


def open_pdf(data: bytes, password: str = "") -> PDFDocument:
    """바이트에서 문서 열기"""
    from .parser import PDFParser
    return PDFParser(data, password=password).parse()
