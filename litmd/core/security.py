"""
Standard 보안 핸들러

지원 범위:
- V1/R2  RC4 40비트
- V2/R3  RC4 40~128비트
- V4/R4  Crypt filter (V2=RC4, AESV2, Identity)
- V5/R5,R6  AESV3 (AES-256)

비밀번호는 user 로 먼저 시도하고, 실패하면 owner 로 시도한다.
owner 비밀번호만 걸린 파일은 빈 user 비밀번호로 바로 열린다.

암호 연산은 cryptography 패키지를 사용한다.
"""

import hashlib
import logging
import struct
from typing import Any, Callable, Dict, Optional

from cryptography.hazmat.decrepit.ciphers.algorithms import ARC4
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import UnsupportedEncryptionError
from .objects import ObjectKind, PDFStream, kind_of
from .stream_decoder import filter_names

logger = logging.getLogger(__name__)

# 비밀번호 패딩 문자열 (32 바이트)
PASSWORD_PAD = bytes.fromhex(
    '28BF4E5E4E758A4164004E56FFFA0108'
    '2E2E00B6D0683E802F0CA9FE6453697A'
)

RC4 = 'RC4'
AESV2 = 'AESV2'
AESV3 = 'AESV3'
IDENTITY = 'Identity'

_CFM_METHODS = {
    'V2': RC4,
    'AESV2': AESV2,
    'AESV3': AESV3,
    'None': IDENTITY,
}


def rc4(key: bytes, data: bytes) -> bytes:
    decryptor = Cipher(ARC4(key), mode=None).decryptor()
    return decryptor.update(data) + decryptor.finalize()


def aes_cbc_decrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    """AES-CBC 복호화 (패딩 제거 없음)"""
    usable = len(data) - len(data) % 16
    if usable == 0:
        return b''
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    return decryptor.update(data[:usable]) + decryptor.finalize()


def aes_cbc_encrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    """AES-CBC 암호화 (입력 길이는 16의 배수)"""
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def strip_pkcs7(data: bytes) -> bytes:
    """PKCS#7 패딩 제거. 패딩이 깨져 있으면 그대로 둔다."""
    if not data:
        return data
    pad = data[-1]
    if 1 <= pad <= 16 and len(data) >= pad and data[-pad:] == bytes([pad]) * pad:
        return data[:-pad]
    return data


def _pad_password(password: bytes) -> bytes:
    return (password[:32] + PASSWORD_PAD)[:32]


def _xor_key(key: bytes, value: int) -> bytes:
    return bytes(b ^ value for b in key)


def _legacy_password_bytes(password: str) -> bytes:
    try:
        return password.encode('latin-1')
    except UnicodeEncodeError:
        return password.encode('utf-8')


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return b''


def detect_encryption(trailer: Dict[str, Any], resolve: Callable[[Any], Any]) -> Optional[dict]:
    """trailer 의 Encrypt 사전 (없으면 None)"""
    if 'Encrypt' not in trailer:
        return None
    encrypt = resolve(trailer.get('Encrypt'))
    if not isinstance(encrypt, dict):
        raise UnsupportedEncryptionError("Encrypt entry is not a dictionary in encrypted document")
    return encrypt


class SecurityHandler:
    """
    복호화 상태 (알고리즘, 파일 키, 문자열/스트림 메서드)

    from_document() 로 만든다. 만들어진 뒤에는 읽기 전용.
    """

    def __init__(self, v: int, r: int, file_key: bytes,
                 string_method: str, stream_method: str,
                 encrypt_metadata: bool = True,
                 crypt_filters: Optional[Dict[str, str]] = None):
        self.v = v
        self.r = r
        self.file_key = file_key
        self.string_method = string_method
        self.stream_method = stream_method
        self.encrypt_metadata = encrypt_metadata
        self.crypt_filters = crypt_filters or {}

    def __repr__(self):
        return (f"SecurityHandler(V={self.v}, R={self.r}, key={len(self.file_key) * 8}bit, "
                f"strings={self.string_method}, streams={self.stream_method})")

    # ------------------------------------------------------------------
    # 생성
    # ------------------------------------------------------------------

    @classmethod
    def from_document(cls, encrypt: Dict[str, Any], id0: bytes, password: str = "") -> 'SecurityHandler':
        """
        Encrypt 사전과 문서 ID 에서 파일 키 유도

        Raises:
            UnsupportedEncryptionError: 비표준 핸들러, 알 수 없는 V/R, 비밀번호 불일치
        """
        filter_name = encrypt.get('Filter')
        if filter_name != 'Standard':
            raise UnsupportedEncryptionError(f"unsupported encryption handler: {filter_name}")

        v = int(encrypt.get('V', 0) or 0)
        r = int(encrypt.get('R', 0) or 0)
        if v not in (1, 2, 4, 5) or r not in (2, 3, 4, 5, 6):
            raise UnsupportedEncryptionError(f"unsupported encryption algorithm V={v} R={r}")

        encrypt_metadata = encrypt.get('EncryptMetadata', True) is not False
        o_value = _as_bytes(encrypt.get('O'))
        u_value = _as_bytes(encrypt.get('U'))
        p_value = int(encrypt.get('P', 0) or 0)

        crypt_filters: Dict[str, str] = {}
        length_bits = int(encrypt.get('Length', 40) or 40)

        if v in (1, 2):
            string_method = stream_method = RC4
            if v == 1:
                length_bits = 40
        else:
            cf = encrypt.get('CF') or {}
            if not isinstance(cf, dict):
                cf = {}
            for name, cf_dict in cf.items():
                if not isinstance(cf_dict, dict):
                    continue
                cfm = str(cf_dict.get('CFM', 'None'))
                if cfm not in _CFM_METHODS:
                    raise UnsupportedEncryptionError(f"unsupported crypt filter method {cfm} in encrypted document")
                crypt_filters[str(name)] = _CFM_METHODS[cfm]
                cf_length = cf_dict.get('Length')
                if v == 4 and cfm == 'V2' and isinstance(cf_length, int):
                    # 바이트 단위로 적는 파일도 있다
                    length_bits = cf_length * 8 if cf_length <= 32 else cf_length
            crypt_filters[IDENTITY] = IDENTITY
            string_method = cls._lookup_filter(crypt_filters, encrypt.get('StrF', IDENTITY))
            stream_method = cls._lookup_filter(crypt_filters, encrypt.get('StmF', IDENTITY))
            if v == 4 and AESV2 in (string_method, stream_method):
                length_bits = 128

        if v == 5:
            key = cls._authenticate_v5(r, password, o_value, u_value,
                                       _as_bytes(encrypt.get('OE')), _as_bytes(encrypt.get('UE')))
        else:
            key_len = max(5, min(16, length_bits // 8))
            key = cls._authenticate_legacy(r, key_len, password, o_value, u_value,
                                           p_value, id0, encrypt_metadata)
        if key is None:
            if password:
                raise UnsupportedEncryptionError("incorrect password for encrypted document")
            raise UnsupportedEncryptionError("document is encrypted with a user password")

        handler = cls(v, r, key, string_method, stream_method, encrypt_metadata, crypt_filters)
        logger.debug("encryption: %r", handler)
        return handler

    @staticmethod
    def _lookup_filter(crypt_filters: Dict[str, str], name: Any) -> str:
        name = str(name)
        if name not in crypt_filters:
            raise UnsupportedEncryptionError(f"unknown crypt filter {name} in encrypted document")
        return crypt_filters[name]

    # ------------------------------------------------------------------
    # R2~R4 (MD5/RC4)
    # ------------------------------------------------------------------

    @classmethod
    def _authenticate_legacy(cls, r: int, key_len: int, password: str, o_value: bytes,
                             u_value: bytes, p_value: int, id0: bytes,
                             encrypt_metadata: bool) -> Optional[bytes]:
        pw = _legacy_password_bytes(password)

        key = cls._compute_key(r, key_len, pw, o_value, p_value, id0, encrypt_metadata)
        if cls._check_user_key(r, key, u_value, id0):
            return key

        # owner 비밀번호로 user 비밀번호 복원
        user_pw = cls._recover_user_password(r, key_len, pw, o_value)
        key = cls._compute_key(r, key_len, user_pw, o_value, p_value, id0, encrypt_metadata)
        if cls._check_user_key(r, key, u_value, id0):
            logger.debug("authenticated with owner password")
            return key
        return None

    @staticmethod
    def _compute_key(r: int, key_len: int, password: bytes, o_value: bytes,
                     p_value: int, id0: bytes, encrypt_metadata: bool) -> bytes:
        h = hashlib.md5()
        h.update(_pad_password(password))
        h.update(o_value[:32])
        h.update(struct.pack('<I', p_value & 0xFFFFFFFF))
        h.update(id0)
        if r >= 4 and not encrypt_metadata:
            h.update(b'\xff\xff\xff\xff')
        key = h.digest()
        if r >= 3:
            for _ in range(50):
                key = hashlib.md5(key[:key_len]).digest()
        return key[:key_len]

    @staticmethod
    def _check_user_key(r: int, key: bytes, u_value: bytes, id0: bytes) -> bool:
        if r == 2:
            return rc4(key, PASSWORD_PAD) == u_value[:32]
        x = rc4(key, hashlib.md5(PASSWORD_PAD + id0).digest())
        for i in range(1, 20):
            x = rc4(_xor_key(key, i), x)
        return x[:16] == u_value[:16]

    @staticmethod
    def _recover_user_password(r: int, key_len: int, owner_pw: bytes, o_value: bytes) -> bytes:
        digest = hashlib.md5(_pad_password(owner_pw)).digest()
        if r >= 3:
            for _ in range(50):
                digest = hashlib.md5(digest).digest()
        rc4_key = digest[:key_len]

        if r == 2:
            return rc4(rc4_key, o_value[:32])
        x = o_value[:32]
        for i in range(19, -1, -1):
            x = rc4(_xor_key(rc4_key, i), x)
        return x

    # ------------------------------------------------------------------
    # R5/R6 (AES-256)
    # ------------------------------------------------------------------

    @classmethod
    def _authenticate_v5(cls, r: int, password: str, o_value: bytes, u_value: bytes,
                         oe_value: bytes, ue_value: bytes) -> Optional[bytes]:
        pw = password.encode('utf-8')[:127]
        if len(u_value) < 48 or len(o_value) < 48:
            raise UnsupportedEncryptionError("malformed O/U entries in encrypted document")

        # user
        if cls._hash_v5(r, pw, u_value[32:40], b'') == u_value[:32]:
            intermediate = cls._hash_v5(r, pw, u_value[40:48], b'')
            return aes_cbc_decrypt(intermediate, bytes(16), ue_value[:32])

        # owner
        udata = u_value[:48]
        if cls._hash_v5(r, pw, o_value[32:40], udata) == o_value[:32]:
            logger.debug("authenticated with owner password")
            intermediate = cls._hash_v5(r, pw, o_value[40:48], udata)
            return aes_cbc_decrypt(intermediate, bytes(16), oe_value[:32])
        return None

    @staticmethod
    def _hash_v5(r: int, password: bytes, salt: bytes, udata: bytes) -> bytes:
        """R5 는 SHA-256 한 번, R6 는 반복 해시 (SHA-256/384/512)"""
        k = hashlib.sha256(password + salt + udata).digest()
        if r < 6:
            return k

        count = 0
        while True:
            count += 1
            k1 = (password + k + udata) * 64
            e = aes_cbc_encrypt(k[:16], k[16:32], k1)
            algo = ('sha256', 'sha384', 'sha512')[sum(e[:16]) % 3]
            k = hashlib.new(algo, e).digest()
            if count >= 64 and e[-1] <= count - 32:
                break
        return k[:32]

    # ------------------------------------------------------------------
    # 복호화
    # ------------------------------------------------------------------

    def _object_key(self, obj_num: int, gen_num: int, aes: bool) -> bytes:
        if self.v >= 5:
            return self.file_key
        data = (self.file_key
                + (obj_num & 0xFFFFFF).to_bytes(3, 'little')
                + (gen_num & 0xFFFF).to_bytes(2, 'little'))
        if aes:
            data += b'sAlT'
        return hashlib.md5(data).digest()[:min(len(self.file_key) + 5, 16)]

    def decrypt_bytes(self, data: bytes, obj_num: int, gen_num: int, method: str) -> bytes:
        if method == IDENTITY or not data:
            return data
        if method == RC4:
            return rc4(self._object_key(obj_num, gen_num, False), data)
        if len(data) < 16:
            logger.debug("AES payload of object %d shorter than IV", obj_num)
            return b''
        key = self._object_key(obj_num, gen_num, True)
        return strip_pkcs7(aes_cbc_decrypt(key, data[:16], data[16:]))

    def decrypt_string(self, data: bytes, obj_num: int, gen_num: int) -> bytes:
        return self.decrypt_bytes(data, obj_num, gen_num, self.string_method)

    def stream_method_for(self, stream: PDFStream) -> Optional[str]:
        """스트림에 적용할 메서드. 복호화하지 않을 스트림이면 None."""
        if stream.get('Type') == 'XRef':
            return None
        if stream.get('Type') == 'Metadata' and not self.encrypt_metadata:
            return None

        filters = filter_names(stream.get('Filter'))
        if 'Crypt' in filters:
            parms = stream.get('DecodeParms')
            idx = filters.index('Crypt')
            if isinstance(parms, list):
                parms = parms[idx] if idx < len(parms) else None
            name = parms.get('Name', IDENTITY) if isinstance(parms, dict) else IDENTITY
            method = self.crypt_filters.get(str(name), IDENTITY)
            return None if method == IDENTITY else method

        return None if self.stream_method == IDENTITY else self.stream_method

    def decrypt_object(self, obj: Any, obj_num: int, gen_num: int) -> Any:
        """객체 그래프 안의 모든 문자열과 스트림 본문 복호화"""
        kind = kind_of(obj)
        if kind is ObjectKind.STRING:
            return self.decrypt_string(bytes(obj), obj_num, gen_num)
        if kind is ObjectKind.ARRAY:
            return [self.decrypt_object(item, obj_num, gen_num) for item in obj]
        if kind is ObjectKind.DICTIONARY:
            return {key: self.decrypt_object(value, obj_num, gen_num) for key, value in obj.items()}
        if kind is ObjectKind.STREAM:
            if obj.decrypted:
                return obj
            obj.attrs = self.decrypt_object(obj.attrs, obj_num, gen_num)
            method = self.stream_method_for(obj)
            if method is not None:
                obj.raw = self.decrypt_bytes(obj.raw, obj_num, gen_num, method)
            obj.decrypted = True
            return obj
        if kind in (ObjectKind.NULL, ObjectKind.BOOLEAN, ObjectKind.NUMBER,
                    ObjectKind.NAME, ObjectKind.REFERENCE):
            return obj
        raise TypeError(f"unhandled object kind {kind}")
