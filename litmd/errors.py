"""
litmd 예외 계층

- LitMDError (기본 예외)
  - InvalidOptionsError (옵션 검증 실패)
  - UnsupportedFormatError (알 수 없는 입력 형식)
  - MalformedDocumentError (손상된 문서 구조)
    - MalformedPDFError (xref/trailer 복구 불가)
  - UnsupportedFeatureError (지원하지 않는 기능)
    - UnsupportedEncryptionError (보안 핸들러/비밀번호)
    - UnsupportedFilterError (스트림 필터)
  - ConversionTimeoutError (데드라인 초과)
"""

from typing import Optional


class LitMDError(Exception):
    """litmd 모든 예외의 기본 클래스"""

    category = "error"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class InvalidOptionsError(LitMDError):
    """ConvertOptions/BatchOptions 값이 올바르지 않음"""

    category = "invalid-options"

    def __init__(self, message: str, parameter_name: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(message, original_error=original_error)
        self.parameter_name = parameter_name


class UnsupportedFormatError(LitMDError):
    """입력 바이트/확장자로 형식을 판별할 수 없음"""

    category = "unsupported-format"


class MalformedDocumentError(LitMDError):
    """문서 구조가 복구 불가능하게 손상됨"""

    category = "malformed"


class MalformedPDFError(MalformedDocumentError):
    """PDF xref/trailer 를 찾거나 해석할 수 없음"""


class UnsupportedFeatureError(LitMDError):
    """형식은 맞지만 구현하지 않은 기능을 사용함"""

    category = "unsupported-feature"


class UnsupportedEncryptionError(UnsupportedFeatureError):
    """
    암호화 문서를 열 수 없음

    비표준 보안 핸들러, 알 수 없는 V/R, 또는 비밀번호 불일치.
    """

    category = "unsupported-encryption"

    def __init__(self, message: str = "document is encrypted and cannot be decrypted",
                 original_error: Optional[Exception] = None):
        if 'encrypt' not in message.lower():
            message = f"encrypted document: {message}"
        super().__init__(message, original_error=original_error)


class UnsupportedFilterError(UnsupportedFeatureError):
    """디코딩할 수 없는 스트림 필터"""

    category = "unsupported-filter"

    def __init__(self, filter_name: str, original_error: Optional[Exception] = None):
        super().__init__(f"unsupported stream filter: {filter_name}", original_error=original_error)
        self.filter_name = filter_name


class ConversionTimeoutError(LitMDError):
    """변환이 데드라인을 넘김"""

    category = "timeout"

    def __init__(self, message: str = "conversion deadline exceeded", stage: Optional[str] = None):
        if stage:
            message = f"{message} (stage: {stage})"
        super().__init__(message)
        self.stage = stage
