"""
변환 옵션과 데드라인

ConvertOptions 는 변환 한 번에 필요한 설정을 모두 담는다.
Deadline 은 진입점부터 파이프라인 각 단계까지 전달되는 취소 토큰.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, FrozenSet, Optional

from .errors import ConversionTimeoutError, InvalidOptionsError
from .layout.headings import HeadingThresholds
from .layout.table_detector import TableThresholds


class StripOption(Enum):
    """제거할 수 있는 요소"""
    HEADERS_FOOTERS = "headers_footers"  # 반복되는 머리글/바닥글
    PAGE_NUMBERS = "page_numbers"
    BLANK_PAGES = "blank_pages"
    TOC = "toc"
    FOOTNOTES = "footnotes"


DEFAULT_STRIP = frozenset({StripOption.HEADERS_FOOTERS, StripOption.BLANK_PAGES})


@dataclass(frozen=True)
class ConvertOptions:
    """문서 → Markdown 변환 옵션"""
    extract_images: bool = True
    preserve_formatting: bool = True
    password: str = ""
    strip: FrozenSet[StripOption] = DEFAULT_STRIP
    detect_lists: bool = True
    detect_headings: bool = True
    page_separator: str = ""
    table_thresholds: TableThresholds = field(default_factory=TableThresholds)
    heading_thresholds: HeadingThresholds = field(default_factory=HeadingThresholds)

    def __post_init__(self):
        strip = self.strip
        if not isinstance(strip, frozenset):
            strip = frozenset(strip)
            object.__setattr__(self, 'strip', strip)
        for opt in strip:
            if not isinstance(opt, StripOption):
                raise InvalidOptionsError(f"unknown strip option: {opt!r}", parameter_name='strip')
        if not isinstance(self.password, str):
            raise InvalidOptionsError("password must be a string", parameter_name='password')
        if not isinstance(self.page_separator, str):
            raise InvalidOptionsError("page_separator must be a string", parameter_name='page_separator')

    def should_strip(self, opt: StripOption) -> bool:
        return opt in self.strip

    def create_updated(self, **kwargs: Any) -> 'ConvertOptions':
        """필드 일부만 바꾼 사본"""
        return replace(self, **kwargs)


class Deadline:
    """
    단조 시계 기반 데드라인

    Deadline(5.0).check() 는 5초가 지나면 ConversionTimeoutError 를 던진다.
    Deadline.none() 은 만료되지 않는다.
    """

    def __init__(self, seconds: Optional[float] = None):
        if seconds is not None and seconds <= 0:
            raise InvalidOptionsError("timeout must be positive", parameter_name='timeout')
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @classmethod
    def none(cls) -> 'Deadline':
        return cls(None)

    @property
    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, stage: Optional[str] = None):
        if self.expired:
            raise ConversionTimeoutError(
                f"conversion exceeded {self.seconds:g}s deadline", stage=stage)

    def __repr__(self):
        return f"Deadline({self.seconds!r})"
