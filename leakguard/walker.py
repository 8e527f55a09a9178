"""
File Walker

Lazily traverses a scan root and yields the files worth matching.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterator, Optional

import pathspec

from .errors import WalkError
from .models import ScanConfig, ScanTarget, SkippedFile, SkipReason

logger = logging.getLogger(__name__)

SNIFF_BYTES = 8192

SkipCallback = Callable[[SkippedFile], None]


class FileWalker:
    """Applies include/exclude filters, the size cap and the binary check"""

    def __init__(self, config: ScanConfig, cancel_event: Optional[threading.Event] = None):
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self._include_exts = set(config.include_extensions)
        self._exclude_dirs = set(config.exclude_dirs)
        self._include_files = pathspec.GitIgnoreSpec.from_lines(config.include_files)
        self._exclude_files = pathspec.GitIgnoreSpec.from_lines(config.exclude_files)

    def walk(self, root: str, on_skip: Optional[SkipCallback] = None) -> Iterator[ScanTarget]:
        """
        Traverse ``root`` and yield candidate files

        Every call starts a fresh traversal. Symbolic links are never followed.

        Args:
            root: Directory (or single file) to scan
            on_skip: Called for each file that is too large, binary or unreadable

        Yields:
            ScanTarget for every regular, readable, non-binary file that passes the filters

        Raises:
            WalkError: if the root is missing or unreadable
        """
        root_path = Path(root)
        if not root_path.exists():
            raise WalkError(f"Scan root does not exist: {root}")

        root_path = root_path.resolve()
        if root_path.is_file():
            # A single file is always considered, whatever its extension
            target = self._inspect(root_path, root_path.name, on_skip)
            if target is not None and not self.cancel_event.is_set():
                yield target
            return

        if not root_path.is_dir() or not os.access(root_path, os.R_OK | os.X_OK):
            raise WalkError(f"Scan root is not a readable directory: {root}")

        def _on_error(error: OSError) -> None:
            path = error.filename or str(root_path)
            logger.warning(f"Cannot list directory {path}: {error.strerror}")
            self._skip(on_skip, path, root_path, SkipReason.UNREADABLE, error.strerror)

        for dirpath, dirnames, filenames in os.walk(
            root_path, topdown=True, onerror=_on_error, followlinks=False
        ):
            if self.cancel_event.is_set():
                logger.debug("Walk cancelled")
                return

            current = Path(dirpath)
            dirnames[:] = sorted(
                name
                for name in dirnames
                if name not in self._exclude_dirs and not (current / name).is_symlink()
            )

            for name in sorted(filenames):
                if self.cancel_event.is_set():
                    logger.debug("Walk cancelled")
                    return

                path = current / name
                if path.is_symlink():
                    logger.debug(f"Not following symbolic link {path}")
                    continue

                relative = path.relative_to(root_path).as_posix()
                if not self._is_candidate(name, relative):
                    continue

                target = self._inspect(path, relative, on_skip)
                if target is not None:
                    yield target

    def _is_candidate(self, name: str, relative: str) -> bool:
        if self._exclude_files.match_file(relative):
            return False
        if Path(name).suffix.lower() in self._include_exts:
            return True
        return self._include_files.match_file(name)

    def _inspect(
        self, path: Path, relative: str, on_skip: Optional[SkipCallback]
    ) -> Optional[ScanTarget]:
        """Stat and sniff a file; returns None (after reporting a skip) if it cannot be scanned"""
        try:
            stat = path.stat()
        except OSError as e:
            self._skip(on_skip, relative, None, SkipReason.UNREADABLE, e.strerror)
            return None

        if not path.is_file():
            return None

        if stat.st_size > self.config.max_file_size:
            self._skip(
                on_skip,
                relative,
                None,
                SkipReason.TOO_LARGE,
                f"{stat.st_size} bytes > {self.config.max_file_size}",
            )
            return None

        try:
            with open(path, "rb") as f:
                chunk = f.read(SNIFF_BYTES)
        except OSError as e:
            self._skip(on_skip, relative, None, SkipReason.UNREADABLE, e.strerror)
            return None

        if b"\x00" in chunk:
            self._skip(on_skip, relative, None, SkipReason.BINARY, None)
            return None

        return ScanTarget(
            path=str(path),
            relative_path=relative,
            size_bytes=stat.st_size,
            extension=path.suffix.lower(),
        )

    @staticmethod
    def _skip(
        on_skip: Optional[SkipCallback],
        path: str,
        root: Optional[Path],
        reason: SkipReason,
        detail: Optional[str],
    ) -> None:
        if root is not None:
            try:
                path = Path(path).relative_to(root).as_posix()
            except ValueError:
                pass
        logger.debug(f"Skipping {path}: {reason.value}")
        if on_skip is not None:
            on_skip(SkippedFile(path=path, reason=reason, detail=detail))
