"""
Secret Scanner

Main module that wires the rule catalog, file walker, matcher and aggregator into
a concurrent scan pipeline.
"""

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, List, Optional, Union

from pydantic import ValidationError

from .aggregator import FindingAggregator
from .errors import ConfigError, FileTooLargeError, ReadError, ScanTimeoutError
from .matcher import match
from .models import ScanConfig, ScanResult, ScanTarget, SkippedFile, SkipReason
from .rules import RuleCatalog
from .walker import FileWalker

logger = logging.getLogger(__name__)


def build_config(**options: Any) -> ScanConfig:
    """Create a ScanConfig, reporting invalid options as ConfigError"""
    try:
        return ScanConfig(**options)
    except ValidationError as e:
        raise ConfigError(f"Invalid scan configuration: {e}") from e


class SecretScanner:
    """Scans a filesystem tree for leaked credentials"""

    def __init__(self, config: ScanConfig, catalog: Optional[RuleCatalog] = None):
        """
        Initialize the scanner

        Args:
            config: Scan configuration
            catalog: Rule catalog; loaded from the configuration if not provided

        Raises:
            ConfigError: if the rule catalog cannot be loaded
        """
        self.config = config
        self.catalog = catalog if catalog is not None else RuleCatalog.load(
            rule_files=config.rule_files,
            enable=config.enable_rules,
            disable=config.disable_rules,
        )
        self.cancel_event = threading.Event()
        self.walker = FileWalker(config, cancel_event=self.cancel_event)

    def cancel(self) -> None:
        """Stop enqueuing files and abandon in-flight ones"""
        if not self.cancel_event.is_set():
            logger.warning("Scan cancellation requested")
        self.cancel_event.set()

    async def scan(self) -> ScanResult:
        """
        Perform the scan

        Returns:
            ScanResult with deduplicated, ordered findings

        Raises:
            WalkError: if the scan root is missing or unreadable
            ScanTimeoutError: if the configured wall-clock budget runs out
        """
        if self.config.timeout is None:
            return await self._run()

        try:
            return await asyncio.wait_for(self._run(), timeout=self.config.timeout)
        except asyncio.TimeoutError as e:
            self.cancel_event.set()
            raise ScanTimeoutError(
                f"Scan of {self.config.target_path} exceeded {self.config.timeout}s"
            ) from e

    async def _run(self) -> ScanResult:
        start_time = time.monotonic()
        workers_count = self.config.max_workers
        aggregator = FindingAggregator(root=self.config.target_path)
        queue: "asyncio.Queue[Optional[ScanTarget]]" = asyncio.Queue(
            maxsize=self.config.queue_size
        )

        logger.info(f"🔍 Starting scan of {self.config.target_path}")
        logger.debug(
            f"Using {len(self.catalog)} rules, {workers_count} workers, "
            f"queue size {self.config.queue_size}"
        )

        # Traversal runs on a single coordinating thread, matching on the pool
        walk_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="leakguard-walk")
        match_pool = ThreadPoolExecutor(
            max_workers=workers_count, thread_name_prefix="leakguard-match"
        )

        tasks: List["asyncio.Task[None]"] = [
            asyncio.create_task(self._produce(queue, walk_pool, aggregator, workers_count))
        ]
        tasks.extend(
            asyncio.create_task(self._consume(queue, match_pool, aggregator))
            for _ in range(workers_count)
        )

        try:
            await asyncio.gather(*tasks)
        except (Exception, asyncio.CancelledError):
            self.cancel_event.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            walk_pool.shutdown(wait=True)
            match_pool.shutdown(wait=True)

        cancelled = self.cancel_event.is_set()
        duration_ms = round((time.monotonic() - start_time) * 1000, 3)
        result = aggregator.finalize(
            rules_applied=len(self.catalog), duration_ms=duration_ms, cancelled=cancelled
        )

        if cancelled:
            logger.warning(f"Scan cancelled after {result.files_scanned} files")
        logger.info(
            f"✅ Scan completed: {len(result.findings)} findings in "
            f"{result.files_scanned} files ({len(result.skipped)} skipped)"
        )
        return result

    async def _produce(
        self,
        queue: "asyncio.Queue[Optional[ScanTarget]]",
        pool: ThreadPoolExecutor,
        aggregator: FindingAggregator,
        workers_count: int,
    ) -> None:
        """Advance the walker on its own thread and feed the bounded queue"""
        loop = asyncio.get_running_loop()
        targets = self.walker.walk(self.config.target_path, on_skip=aggregator.record_skip)

        while not self.cancel_event.is_set():
            target = await loop.run_in_executor(pool, next, targets, None)
            if target is None:
                break
            await queue.put(target)

        for _ in range(workers_count):
            await queue.put(None)

    async def _consume(
        self,
        queue: "asyncio.Queue[Optional[ScanTarget]]",
        pool: ThreadPoolExecutor,
        aggregator: FindingAggregator,
    ) -> None:
        """Match queued files until the end-of-stream marker arrives"""
        loop = asyncio.get_running_loop()

        while True:
            target = await queue.get()
            if target is None:
                return
            if self.cancel_event.is_set():
                continue

            try:
                findings = await loop.run_in_executor(
                    pool,
                    match,
                    target,
                    self.catalog,
                    self.cancel_event,
                    self.config.max_file_size,
                )
            except ReadError as e:
                logger.debug(f"Skipping {target.relative_path}: {e}")
                aggregator.record_skip(
                    SkippedFile(
                        path=target.relative_path,
                        reason=(
                            SkipReason.TOO_LARGE
                            if isinstance(e, FileTooLargeError)
                            else SkipReason.UNREADABLE
                        ),
                        detail=e.reason,
                    )
                )
                continue

            # An abandoned file contributes nothing, not even partial findings
            if self.cancel_event.is_set():
                continue

            aggregator.add(findings)
            aggregator.file_scanned()


def scan_path(
    root: Union[str, Path],
    config: Optional[ScanConfig] = None,
    catalog: Optional[RuleCatalog] = None,
) -> ScanResult:
    """
    Synchronous convenience wrapper around ``SecretScanner.scan``

    Args:
        root: Directory or file to scan
        config: Scan configuration; ``target_path`` is replaced by ``root``
        catalog: Rule catalog; defaults to the configured catalog

    Returns:
        ScanResult of the completed scan
    """
    if config is None:
        config = build_config(target_path=str(root))
    else:
        config = config.model_copy(update={"target_path": str(root)})

    scanner = SecretScanner(config, catalog=catalog)
    return asyncio.run(scanner.scan())
