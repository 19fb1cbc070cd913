"""
PDF 이미지 추출

Image XObject 를 저장 가능한 이미지 바이트로 바꾼다.

- DCTDecode (JPEG), JPXDecode (JPEG2000): 원본 그대로
- 그 외 필터의 raw 샘플: 디코딩 후 PNG 로 감싸기 (CMYK → RGB)
- 8비트가 아닌 raw 샘플: 그대로 두고 format 'unknown'
"""

import logging
import struct
import zlib
from typing import Any, List, Optional, Tuple

from ..errors import UnsupportedFilterError
from ..layout.models import ImageItem
from .objects import PDFName, PDFStream, as_number
from .stream_decoder import filter_names

logger = logging.getLogger(__name__)

# 매직 바이트 → 형식
_SIGNATURES = [
    (b'\x89PNG\r\n\x1a\n', 'png'),
    (b'\xff\xd8\xff', 'jpeg'),
    (b'GIF87a', 'gif'),
    (b'GIF89a', 'gif'),
    (b'BM', 'bmp'),
    (b'II*\x00', 'tiff'),
    (b'MM\x00*', 'tiff'),
    (b'\x00\x00\x00\x0cjP  \r\n\x87\n', 'jp2'),
    (b'\xff\x4f\xff\x51', 'jp2'),
    (b'\x01\x00\x00\x00', 'emf'),
    (b'\xd7\xcd\xc6\x9a', 'wmf'),
]

EXTENSIONS = {
    'png': 'png', 'jpeg': 'jpg', 'gif': 'gif', 'bmp': 'bmp', 'tiff': 'tiff',
    'jp2': 'jp2', 'webp': 'webp', 'emf': 'emf', 'wmf': 'wmf', 'unknown': 'bin',
}


def detect_image_format(data: bytes) -> str:
    """매직 바이트로 이미지 형식 판별"""
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'webp'
    for signature, fmt in _SIGNATURES:
        if data.startswith(signature):
            return fmt
    return 'unknown'


def image_extension(fmt: str) -> str:
    return EXTENSIONS.get(fmt, 'bin')


def _channels(document, color_space: Any) -> Optional[int]:
    """색 공간의 채널 수 (Indexed 등 지원하지 않는 것은 None)"""
    cs = document.resolve(color_space)
    if cs is None:
        return 1
    if isinstance(cs, PDFName):
        return {'DeviceGray': 1, 'CalGray': 1, 'G': 1,
                'DeviceRGB': 3, 'CalRGB': 3, 'RGB': 3,
                'DeviceCMYK': 4, 'CMYK': 4}.get(str(cs))
    if isinstance(cs, list) and cs:
        family = str(document.resolve(cs[0]))
        if family == 'ICCBased' and len(cs) > 1:
            profile = document.resolve(cs[1])
            if isinstance(profile, PDFStream):
                return int(as_number(document.resolve(profile.get('N')), 3))
            return 3
        if family in ('CalRGB', 'Lab'):
            return 3
        if family == 'CalGray':
            return 1
    return None


def decode_image(document, stream: PDFStream) -> Optional[Tuple[bytes, str, int, int]]:
    """
    Image XObject → (이미지 바이트, 형식, 폭, 높이)

    디코딩할 수 없으면 None (이미지 하나만 건너뜀).
    """
    width = int(as_number(document.resolve(stream.get('Width')), 0))
    height = int(as_number(document.resolve(stream.get('Height')), 0))
    filters = filter_names(document.resolve(stream.get('Filter')))

    if filters and filters[-1] in ('DCTDecode', 'JPXDecode'):
        try:
            # 앞단 필터(ASCII85 등)만 풀고 JPEG 바이트는 유지
            data = document.stream_data(stream)
        except (ValueError, UnsupportedFilterError) as e:
            logger.warning("skipping image: %s", e)
            return None
        return data, detect_image_format(data), width, height

    try:
        samples = document.stream_data(stream)
    except (ValueError, UnsupportedFilterError) as e:
        logger.warning("skipping image: %s", e)
        return None

    bpc = int(as_number(document.resolve(stream.get('BitsPerComponent')), 8))
    channels = _channels(document, stream.get('ColorSpace'))
    if stream.get('ImageMask') is True:
        channels, bpc = None, 1

    if bpc != 8 or channels not in (1, 3, 4) or width <= 0 or height <= 0:
        return samples, 'unknown', width, height

    if channels == 4:
        samples = _cmyk_to_rgb(samples)
        channels = 3
    return raw_to_png(samples, width, height, channels), 'png', width, height


def raw_to_png(data: bytes, width: int, height: int, channels: int) -> bytes:
    """8비트 Gray/RGB 샘플을 PNG 로 변환"""
    color_type = 2 if channels == 3 else 0
    row_size = width * channels

    rows = bytearray()
    for y in range(height):
        row = data[y * row_size:(y + 1) * row_size]
        rows.append(0)  # 필터 타입: None
        rows.extend(row)
        if len(row) < row_size:
            rows.extend(bytes(row_size - len(row)))

    def chunk(tag: bytes, payload: bytes) -> bytes:
        crc = zlib.crc32(tag + payload) & 0xffffffff
        return struct.pack('>I', len(payload)) + tag + payload + struct.pack('>I', crc)

    ihdr = struct.pack('>IIBBBBB', width, height, 8, color_type, 0, 0, 0)
    return (b'\x89PNG\r\n\x1a\n'
            + chunk(b'IHDR', ihdr)
            + chunk(b'IDAT', zlib.compress(bytes(rows), 9))
            + chunk(b'IEND', b''))


def _cmyk_to_rgb(data: bytes) -> bytes:
    rgb = bytearray()
    for i in range(0, len(data) - 3, 4):
        c, m, y, k = data[i], data[i + 1], data[i + 2], data[i + 3]
        rgb.append(int(255 * (1 - c / 255) * (1 - k / 255)))
        rgb.append(int(255 * (1 - m / 255) * (1 - k / 255)))
        rgb.append(int(255 * (1 - y / 255) * (1 - k / 255)))
    return bytes(rgb)


class ImageCollector:
    """문서 전체에서 image_001, image_002 ... 순서로 번호를 매긴다"""

    def __init__(self):
        self.images: List[ImageItem] = []

    def next_id(self) -> str:
        return f"image_{len(self.images) + 1:03d}"

    def add(self, data: bytes, fmt: str, source_path: str, page_index: int = 0,
            alt_text: str = "", width: int = 0, height: int = 0) -> ImageItem:
        item = ImageItem(
            id=self.next_id(),
            source_path=source_path,
            format=fmt,
            data=data,
            alt_text=alt_text,
            page_index=page_index,
            width=width,
            height=height,
        )
        self.images.append(item)
        return item


def extract_page_images(document, placements, page_index: int,
                        collector: ImageCollector) -> List[Tuple[Any, ImageItem]]:
    """페이지의 이미지 배치를 ImageItem 으로 변환 (배치 순서 유지)"""
    results = []
    for placement in placements:
        if placement.stream is None:
            continue
        decoded = decode_image(document, placement.stream)
        if decoded is None:
            continue
        data, fmt, width, height = decoded
        item = collector.add(data, fmt, placement.name, page_index=page_index,
                             width=width, height=height)
        results.append((placement, item))
    return results
