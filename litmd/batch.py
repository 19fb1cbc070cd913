"""
여러 파일/디렉터리 일괄 변환

1. 입력 경로 순회 (심볼릭 링크를 따라가되 실제 경로 기준으로 한 번씩만)
2. 이미 .md 가 있으면 건너뜀
3. 변환 + 저장 (workers > 1 이면 스레드 풀)

순회 상태는 TraversalState 객체에 담아 넘긴다.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Set, Union

from . import convert_file
from .errors import InvalidOptionsError, LitMDError
from .options import ConvertOptions, Deadline

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = frozenset({'.pdf', '.docx', '.xlsx'})


def normalize_extension(ext: str) -> str:
    """'PDF' → '.pdf'"""
    ext = ext.strip().lower()
    if ext and not ext.startswith('.'):
        ext = '.' + ext
    return ext


@dataclass
class BatchOptions:
    """일괄 변환 옵션"""
    recursive: bool = False
    extensions: FrozenSet[str] = DEFAULT_EXTENSIONS
    skip_existing: bool = True
    output_dir: Optional[Path] = None   # 지정하면 모든 .md 를 한 디렉터리에
    workers: int = 1
    timeout: Optional[float] = None     # 파일당 제한 시간 (초)

    def __post_init__(self):
        self.extensions = frozenset(normalize_extension(e) for e in self.extensions if e.strip())
        if not self.extensions:
            raise InvalidOptionsError("extensions must not be empty", parameter_name='extensions')
        if self.workers < 1:
            raise InvalidOptionsError("workers must be at least 1", parameter_name='workers')
        if self.output_dir is not None:
            self.output_dir = Path(self.output_dir)


class FileStatus(Enum):
    CONVERTED = "converted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FileOutcome:
    """파일 하나의 처리 결과"""
    path: Path
    output_path: Path
    status: FileStatus
    error: Optional[LitMDError] = None
    message: str = ""

    @property
    def category(self) -> str:
        if self.error is None:
            return ""
        return getattr(self.error, 'category', 'io-error')


@dataclass
class BatchResult:
    """일괄 변환 결과"""
    outcomes: List[FileOutcome] = field(default_factory=list)

    def _count(self, status: FileStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def converted(self) -> int:
        return self._count(FileStatus.CONVERTED)

    @property
    def skipped(self) -> int:
        return self._count(FileStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FileStatus.FAILED)

    @property
    def errors(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if o.status is FileStatus.FAILED]

    def summary(self) -> str:
        return (f"Complete: {self.converted} converted, "
                f"{self.skipped} skipped (already exist), {self.failed} failed")


@dataclass
class TraversalState:
    """방문한 실제 디렉터리와 이미 고른 실제 파일"""
    visited_dirs: Set[str] = field(default_factory=set)
    processed_files: Set[str] = field(default_factory=set)

    def enter_dir(self, path: Path) -> bool:
        real = os.path.realpath(path)
        if real in self.visited_dirs:
            return False
        self.visited_dirs.add(real)
        return True

    def claim_file(self, path: Path) -> bool:
        real = os.path.realpath(path)
        if real in self.processed_files:
            return False
        self.processed_files.add(real)
        return True


class BatchConverter:
    """
    일괄 변환기

    사용법:
        converter = BatchConverter(ConvertOptions(), BatchOptions(recursive=True))
        result = converter.run(['docs/'])
        print(result.summary())
    """

    def __init__(self, options: Optional[ConvertOptions] = None,
                 batch_options: Optional[BatchOptions] = None):
        self.options = options or ConvertOptions()
        self.batch_options = batch_options or BatchOptions()

    def collect(self, paths: Iterable[Union[str, Path]],
                state: Optional[TraversalState] = None) -> List[Path]:
        """
        입력 경로 → 변환할 파일 목록

        명시한 파일은 확장자와 상관없이 포함한다.
        디렉터리 안에서는 extensions 에 맞는 파일만 고른다.
        """
        state = state or TraversalState()
        files: List[Path] = []
        for raw in paths:
            path = Path(raw)
            if path.is_dir():
                self._walk(path, state, files)
            elif path.exists():
                if state.claim_file(path):
                    files.append(path)
            else:
                logger.warning("no such file or directory: %s", path)
        return files

    def _walk(self, directory: Path, state: TraversalState, files: List[Path]):
        if not state.enter_dir(directory):
            logger.debug("already visited %s", directory)
            return
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.warning("cannot read directory %s: %s", directory, e)
            return

        for entry in entries:
            try:
                is_dir = entry.is_dir()
            except OSError as e:
                logger.warning("cannot stat %s: %s", entry, e)
                continue
            if is_dir:
                if self.batch_options.recursive:
                    self._walk(entry, state, files)
            elif entry.suffix.lower() in self.batch_options.extensions:
                if state.claim_file(entry):
                    files.append(entry)

    def output_path_for(self, path: Path) -> Path:
        name = path.with_suffix('.md').name
        if self.batch_options.output_dir is not None:
            return self.batch_options.output_dir / name
        return path.with_suffix('.md')

    def convert_one(self, path: Path) -> FileOutcome:
        """파일 하나 변환. LitMDError/OSError 는 FAILED 결과로 돌려준다."""
        output_path = self.output_path_for(path)
        if self.batch_options.skip_existing and output_path.exists():
            logger.debug("skipping %s (%s exists)", path, output_path)
            return FileOutcome(path, output_path, FileStatus.SKIPPED)

        deadline = Deadline(self.batch_options.timeout)
        try:
            convert_file(path, output_path, options=self.options, deadline=deadline)
        except LitMDError as e:
            logger.error("%s: [%s] %s", path, e.category, e)
            return FileOutcome(path, output_path, FileStatus.FAILED, error=e, message=str(e))
        except OSError as e:
            logger.error("%s: %s", path, e)
            wrapped = LitMDError(str(e), original_error=e)
            wrapped.category = 'io-error'
            return FileOutcome(path, output_path, FileStatus.FAILED, error=wrapped, message=str(e))
        except Exception as e:
            # 나머지 파일은 계속 변환한다
            logger.exception("%s: unexpected error", path)
            wrapped = LitMDError(f"{type(e).__name__}: {e}", original_error=e)
            return FileOutcome(path, output_path, FileStatus.FAILED, error=wrapped,
                               message=wrapped.message)
        logger.info("converted %s -> %s", path, output_path)
        return FileOutcome(path, output_path, FileStatus.CONVERTED)

    def run(self, paths: Iterable[Union[str, Path]]) -> BatchResult:
        files = self.collect(paths)
        result = BatchResult()
        if not files:
            return result

        if self.batch_options.workers == 1:
            for path in files:
                result.outcomes.append(self.convert_one(path))
            return result

        with ThreadPoolExecutor(max_workers=self.batch_options.workers) as executor:
            futures = {executor.submit(self.convert_one, path): path for path in files}
            for future in as_completed(futures):
                result.outcomes.append(future.result())
        # 입력 순서대로
        order = {path: index for index, path in enumerate(files)}
        result.outcomes.sort(key=lambda o: order[o.path])
        return result
