"""
스트림 필터 레이어

지원하는 필터:
1. FlateDecode (zlib, PNG/TIFF predictor)
2. LZWDecode (EarlyChange, predictor)
3. ASCII85Decode / ASCIIHexDecode
4. RunLengthDecode
5. DCTDecode / JPXDecode (이미지 데이터이므로 그대로 통과)
6. Crypt (보안 핸들러가 이미 처리했으므로 통과)

그 외 필터는 UnsupportedFilterError.
"""

import logging
import zlib
from typing import Any, List, Optional

from ..errors import UnsupportedFilterError

logger = logging.getLogger(__name__)

# 인라인 이미지 등에서 쓰는 약어
FILTER_ABBREVIATIONS = {
    'Fl': 'FlateDecode',
    'LZW': 'LZWDecode',
    'AHx': 'ASCIIHexDecode',
    'A85': 'ASCII85Decode',
    'RL': 'RunLengthDecode',
    'DCT': 'DCTDecode',
    'CCF': 'CCITTFaxDecode',
}

# 디코딩 없이 원본 바이트를 그대로 넘기는 이미지 필터
PASSTHROUGH_FILTERS = {'DCTDecode', 'JPXDecode'}


def normalize_filters(filters: Any, params: Any = None):
    """Filter/DecodeParms 를 같은 길이의 리스트 쌍으로 정규화"""
    if filters is None:
        filter_list = []
    elif isinstance(filters, (list, tuple)):
        filter_list = [str(f) for f in filters]
    else:
        filter_list = [str(filters)]

    if isinstance(params, (list, tuple)):
        param_list = [p if isinstance(p, dict) else {} for p in params]
    elif isinstance(params, dict):
        param_list = [params]
    else:
        param_list = []

    param_list = (param_list + [{}] * len(filter_list))[:len(filter_list)]
    filter_list = [FILTER_ABBREVIATIONS.get(f, f) for f in filter_list]
    return filter_list, param_list


class StreamDecoder:
    """PDF 스트림 디코더"""

    @staticmethod
    def decode(data: bytes, filters: Any, params: Any = None) -> bytes:
        """
        필터 체인을 순서대로 적용

        Args:
            data: 원본 (이미 복호화된) 스트림 데이터
            filters: 필터 이름 또는 필터 리스트
            params: DecodeParms (dict 또는 필터별 dict 리스트)

        Returns:
            디코딩된 데이터

        Raises:
            UnsupportedFilterError: 알 수 없는 필터
        """
        filter_list, param_list = normalize_filters(filters, params)
        result = data

        for filter_name, parms in zip(filter_list, param_list):
            if filter_name == 'FlateDecode':
                result = StreamDecoder.decode_flate(result, parms)
            elif filter_name == 'LZWDecode':
                result = StreamDecoder.decode_lzw(result, parms)
            elif filter_name == 'ASCII85Decode':
                result = StreamDecoder.decode_ascii85(result)
            elif filter_name == 'ASCIIHexDecode':
                result = StreamDecoder.decode_asciihex(result)
            elif filter_name == 'RunLengthDecode':
                result = StreamDecoder.decode_runlength(result)
            elif filter_name in PASSTHROUGH_FILTERS:
                break
            elif filter_name == 'Crypt':
                continue
            else:
                raise UnsupportedFilterError(filter_name)

        return result

    @staticmethod
    def decode_flate(data: bytes, params: Optional[dict] = None) -> bytes:
        """FlateDecode 압축 해제 (잘린 스트림은 복구 가능한 부분까지)"""
        try:
            decompressed = zlib.decompress(data)
        except zlib.error:
            decompressed = StreamDecoder._inflate_partial(data)

        return StreamDecoder._apply_params(decompressed, params)

    @staticmethod
    def _inflate_partial(data: bytes) -> bytes:
        for wbits in (zlib.MAX_WBITS, -zlib.MAX_WBITS):
            inflater = zlib.decompressobj(wbits)
            try:
                out = inflater.decompress(data)
            except zlib.error:
                continue
            if out:
                logger.debug("flate stream truncated, recovered %d bytes", len(out))
                return out
        logger.debug("flate stream could not be inflated")
        return b''

    @staticmethod
    def decode_ascii85(data: bytes) -> bytes:
        """ASCII85 (Base85) 디코딩"""
        data = bytes(b for b in data if b not in b' \t\n\r\x00\x0c')
        if data.startswith(b'<~'):
            data = data[2:]
        end = data.find(b'~>')
        if end != -1:
            data = data[:end]

        result = bytearray()
        i = 0
        while i < len(data):
            if data[i:i + 1] == b'z':
                result.extend(b'\x00\x00\x00\x00')
                i += 1
                continue

            chunk = data[i:i + 5]
            chunk_len = len(chunk)
            if chunk_len < 5:
                chunk = chunk + b'u' * (5 - chunk_len)

            value = 0
            for c in chunk:
                if c < 33 or c > 117:
                    raise ValueError(f"Invalid ASCII85 character: {chr(c)!r}")
                value = value * 85 + (c - 33)

            decoded = (value & 0xFFFFFFFF).to_bytes(4, 'big')
            if chunk_len < 5:
                decoded = decoded[:chunk_len - 1]
            result.extend(decoded)
            i += chunk_len

        return bytes(result)

    @staticmethod
    def decode_asciihex(data: bytes) -> bytes:
        """ASCIIHex 디코딩"""
        end = data.find(b'>')
        if end != -1:
            data = data[:end]
        data = bytes(b for b in data if b not in b' \t\n\r\x00\x0c')
        if len(data) % 2 == 1:
            data = data + b'0'
        return bytes.fromhex(data.decode('ascii'))

    @staticmethod
    def decode_lzw(data: bytes, params: Optional[dict] = None) -> bytes:
        """LZW 압축 해제"""
        clear_code = 256
        eod_code = 257
        early = 1
        if params and params.get('EarlyChange') is not None:
            early = int(params.get('EarlyChange'))

        table = [bytes([i]) for i in range(256)] + [b'', b'']
        code_bits = 9
        result = bytearray()
        bit_buffer = 0
        bits_in_buffer = 0
        prev_seq = None
        pos = 0

        while True:
            while bits_in_buffer < code_bits and pos < len(data):
                bit_buffer = ((bit_buffer << 8) | data[pos]) & 0xFFFFFFFF
                bits_in_buffer += 8
                pos += 1
            if bits_in_buffer < code_bits:
                break

            code = (bit_buffer >> (bits_in_buffer - code_bits)) & ((1 << code_bits) - 1)
            bits_in_buffer -= code_bits

            if code == clear_code:
                table = table[:258]
                code_bits = 9
                prev_seq = None
                continue
            if code == eod_code:
                break

            if code < len(table):
                seq = table[code]
            elif code == len(table) and prev_seq is not None:
                seq = prev_seq + prev_seq[:1]
            else:
                logger.debug("invalid LZW code %d, stopping", code)
                break

            result.extend(seq)
            if prev_seq is not None and len(table) < 4096:
                table.append(prev_seq + seq[:1])
            prev_seq = seq

            if len(table) + early >= (1 << code_bits) and code_bits < 12:
                code_bits += 1

        return StreamDecoder._apply_params(bytes(result), params)

    @staticmethod
    def decode_runlength(data: bytes) -> bytes:
        """RunLength 디코딩"""
        result = bytearray()
        i = 0
        while i < len(data):
            length = data[i]
            i += 1
            if length == 128:
                break
            if length < 128:
                count = length + 1
                result.extend(data[i:i + count])
                i += count
            else:
                result.extend(data[i:i + 1] * (257 - length))
                i += 1
        return bytes(result)

    @staticmethod
    def _apply_params(data: bytes, params: Optional[dict]) -> bytes:
        if not params:
            return data
        predictor = int(params.get('Predictor', 1) or 1)
        if predictor <= 1:
            return data
        return StreamDecoder._apply_predictor(
            data,
            predictor,
            int(params.get('Columns', 1) or 1),
            int(params.get('Colors', 1) or 1),
            int(params.get('BitsPerComponent', 8) or 8),
        )

    @staticmethod
    def _apply_predictor(data: bytes, predictor: int, columns: int,
                         colors: int = 1, bits: int = 8) -> bytes:
        """Predictor 역변환 (TIFF 2, PNG 10~15)"""
        bytes_per_pixel = max(1, colors * bits // 8)
        row_size = (columns * colors * bits + 7) // 8

        if predictor == 2:
            if bits != 8:
                return data
            result = bytearray()
            for row_start in range(0, len(data), row_size):
                row = bytearray(data[row_start:row_start + row_size])
                for i in range(bytes_per_pixel, len(row)):
                    row[i] = (row[i] + row[i - bytes_per_pixel]) & 0xFF
                result.extend(row)
            return bytes(result)

        if predictor < 10:
            return data

        result = bytearray()
        prev_row = bytearray(row_size)
        i = 0
        while i < len(data):
            filter_type = data[i]
            i += 1
            row = bytearray(data[i:i + row_size])
            i += row_size
            if len(row) < row_size:
                row.extend(bytes(row_size - len(row)))

            if filter_type == 1:
                for j in range(bytes_per_pixel, row_size):
                    row[j] = (row[j] + row[j - bytes_per_pixel]) & 0xFF
            elif filter_type == 2:
                for j in range(row_size):
                    row[j] = (row[j] + prev_row[j]) & 0xFF
            elif filter_type == 3:
                for j in range(row_size):
                    left = row[j - bytes_per_pixel] if j >= bytes_per_pixel else 0
                    row[j] = (row[j] + (left + prev_row[j]) // 2) & 0xFF
            elif filter_type == 4:
                for j in range(row_size):
                    left = row[j - bytes_per_pixel] if j >= bytes_per_pixel else 0
                    up_left = prev_row[j - bytes_per_pixel] if j >= bytes_per_pixel else 0
                    row[j] = (row[j] + _paeth(left, prev_row[j], up_left)) & 0xFF

            result.extend(row)
            prev_row = row

        return bytes(result)


def _paeth(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def filter_names(filters: Any) -> List[str]:
    """스트림 사전의 Filter 값에서 정규화된 이름 목록"""
    return normalize_filters(filters)[0]
