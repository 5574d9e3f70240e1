"""Session export: JSON documents and streamed ZIP bundles."""

import asyncio
import gc
import json
import logging
import os
import re
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal
from uuid import UUID, uuid4

from synth_collect.adapters.archive import ArchiveWriter
from synth_collect.config import MB, ExportConfig
from synth_collect.domain.bundles import METADATA_ENTRY
from synth_collect.domain.images import ImageRecord
from synth_collect.domain.sessions import ExportFormat, ExportRecord, SessionRecord
from synth_collect.errors import (
    ExportCancelledError,
    ExportFileError,
    ExportTimeoutError,
    ImageFileNotFoundError,
    NoImagesToExportError,
    StorageError,
)
from synth_collect.services.bundles import build_bundle_document, portable_image_path
from synth_collect.services.paths import PathResolver
from synth_collect.services.progress import ProgressStore, progress_key
from synth_collect.services.sessions import SessionService
from synth_collect.services.storage import CollectionStore

_logger = logging.getLogger(__name__)

ExportMode = Literal["json", "full"]
EXPORT_MODES: tuple[str, ...] = ("json", "full")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def safe_export_name(name: str) -> str:
    """Reduce a session name to characters safe in a download file name."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name) or "session"


def json_export_filename(name: str) -> str:
    return f"{safe_export_name(name)}_export.json"


def archive_export_filename(name: str) -> str:
    return f"{safe_export_name(name)}_full_export.zip"


def current_memory_mb() -> float:
    """Return the resident set size of this process, or 0 when unknown."""
    try:
        with open("/proc/self/statm", encoding="ascii") as handle:
            rss_pages = int(handle.read().split()[1])
    except (OSError, ValueError, IndexError):
        return 0.0
    return rss_pages * os.sysconf("SC_PAGE_SIZE") / MB


def backoff_delay(base: float, attempt: int) -> float:
    """Delay before retry number ``attempt``, starting at ``base``."""
    return base * 2 ** (attempt - 1)


def _batches(items: list["FileCheck"], size: int) -> Iterator[list["FileCheck"]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass(frozen=True)
class FileCheck:
    """Pre-export validation result for one image file."""

    record: ImageRecord
    path: Path | None
    size: int = 0
    reason: str | None = None

    @property
    def valid(self) -> bool:
        return self.reason is None


@dataclass
class ExportMetrics:
    """Counters collected while streaming an archive."""

    total: int = 0
    processed: int = 0
    failed: int = 0
    batches: int = 0
    gc_runs: int = 0
    started_at: float = 0.0
    finished_at: float | None = None

    @property
    def done(self) -> int:
        return self.processed + self.failed

    @property
    def elapsed_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return self.finished_at - self.started_at

    @property
    def average_rate(self) -> float:
        """Files handled per second over the whole export."""
        elapsed = self.elapsed_seconds
        return self.done / elapsed if elapsed > 0 else 0.0


@dataclass
class ExportJob:
    """A validated full export, ready to be streamed."""

    session: SessionRecord
    user_id: str
    progress_key: str
    filename: str
    total_images: int
    valid_files: list[FileCheck]
    warnings: list[str]
    metrics: ExportMetrics = field(default_factory=ExportMetrics)
    failed_files: list[str] = field(default_factory=list)

    def stats(self) -> dict[str, object]:
        """Return the ``export_stats`` block of the archive metadata."""
        return {
            "total_images": self.total_images,
            "valid_files": len(self.valid_files),
            "invalid_files": self.total_images - len(self.valid_files),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class JsonExport:
    document: dict[str, object]
    filename: str


@dataclass
class ExportService:
    """Build session exports under memory, time and concurrency budgets."""

    sessions: SessionService
    store: CollectionStore
    resolver: PathResolver
    progress: ProgressStore
    config: ExportConfig = field(default_factory=ExportConfig)
    clock: Callable[[], float] = time.monotonic
    memory_probe: Callable[[], float] = current_memory_mb

    def export_json(self, session_id: UUID, user_id: str) -> JsonExport:
        """Return the session as a JSON bundle document."""
        session = self.sessions.get_owned_session(session_id, user_id)
        images = self.store.list_images(session_id)
        document = build_bundle_document(session, images, datetime.now(tz=UTC))
        filename = json_export_filename(session.name)
        self._record_export(session.id, user_id, "json", filename, len(images))
        _logger.info("JSON export of session %s: %d images", session_id, len(images))
        return JsonExport(document=document, filename=filename)

    def check_file(self, record: ImageRecord) -> FileCheck:
        """Locate and size-check an image file without healing its path."""
        try:
            resolved = self.resolver.locate(record)
        except ImageFileNotFoundError:
            return FileCheck(record=record, path=None, reason="file not found")
        try:
            size = resolved.path.stat().st_size
        except OSError as exc:
            return FileCheck(record=record, path=resolved.path, reason=str(exc))
        if size <= 0:
            return FileCheck(record=record, path=resolved.path, reason="file is empty")
        if size >= self.config.max_file_size_bytes:
            return FileCheck(
                record=record,
                path=resolved.path,
                size=size,
                reason=f"file too large ({size} bytes)",
            )
        return FileCheck(record=record, path=resolved.path, size=size)

    async def prepare_full_export(self, session_id: UUID, user_id: str) -> ExportJob:
        """Validate a full export before any response bytes are sent.

        Raises ``NoImagesToExportError`` when no image file is usable.
        """
        session = self.sessions.get_owned_session(session_id, user_id)
        key = progress_key(session_id, user_id)
        self.progress.delete(key)
        self.progress.start(
            key,
            str(session_id),
            status="validating",
            message="Validating image files",
        )
        images = self.store.list_images(session_id)
        checks = await asyncio.to_thread(
            lambda: [self.check_file(image) for image in images]
        )
        valid = [check for check in checks if check.valid]
        warnings = [
            f"{check.record.original_filename}: {check.reason}"
            for check in checks
            if not check.valid
        ]
        for warning in warnings:
            _logger.warning("Excluding from export of %s: %s", session_id, warning)
        if not valid:
            self._publish(key, status="error", error="No images to export")
            raise NoImagesToExportError(warnings)
        self._publish(
            key,
            total_images=len(valid),
            message=f"{len(valid)} of {len(images)} files ready",
        )
        return ExportJob(
            session=session,
            user_id=user_id,
            progress_key=key,
            filename=archive_export_filename(session.name),
            total_images=len(images),
            valid_files=valid,
            warnings=warnings,
            metrics=ExportMetrics(total=len(valid)),
        )

    async def stream_archive(
        self,
        job: ExportJob,
        is_cancelled: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[bytes]:
        """Yield the ZIP bundle of a prepared export chunk by chunk."""
        config = self.config
        metrics = job.metrics
        metrics.started_at = self.clock()
        deadline = metrics.started_at + config.timeout_seconds
        writer = ArchiveWriter(config.compression_level, config.chunk_size)
        semaphore = asyncio.Semaphore(config.max_concurrent_files)
        since_gc = 0
        self._publish(
            job.progress_key, status="processing", message="Creating archive"
        )
        try:
            document = build_bundle_document(
                job.session,
                [check.record for check in job.valid_files],
                datetime.now(tz=UTC),
                stats=job.stats(),
            )
            metadata = json.dumps(document, indent=2)
            for chunk in writer.write_text(METADATA_ENTRY, metadata):
                yield chunk

            for batch in _batches(job.valid_files, config.batch_size):
                if is_cancelled is not None and await is_cancelled():
                    raise ExportCancelledError()
                if self.clock() >= deadline:
                    raise ExportTimeoutError(config.timeout_seconds)
                contents = await asyncio.gather(
                    *(
                        self._read_with_retry(check, semaphore, deadline)
                        for check in batch
                    )
                )
                for check, content in zip(batch, contents, strict=True):
                    if content is None:
                        metrics.failed += 1
                        job.failed_files.append(check.record.filename)
                    else:
                        entry = portable_image_path(check.record.filename)
                        for chunk in writer.write_bytes(entry, content):
                            yield chunk
                        metrics.processed += 1
                    since_gc += 1
                    self._report_file(job, check.record.filename)
                del contents
                metrics.batches += 1
                if (
                    self.memory_probe() > config.memory_limit_mb
                    or since_gc >= config.gc_frequency
                ):
                    gc.collect()
                    metrics.gc_runs += 1
                    since_gc = 0
                self._report_file(job, None)
                await asyncio.sleep(0)

            for chunk in writer.close():
                yield chunk
        except (GeneratorExit, asyncio.CancelledError):
            metrics.finished_at = self.clock()
            _logger.warning("Export of session %s cancelled by client", job.session.id)
            self._publish(
                job.progress_key,
                status="error",
                error=str(ExportCancelledError()),
                message="Export cancelled",
            )
            raise
        except Exception as exc:
            metrics.finished_at = self.clock()
            _logger.error("Export of session %s failed: %s", job.session.id, exc)
            self._publish(
                job.progress_key,
                status="error",
                error=str(exc),
                message="Export failed",
            )
            raise

        metrics.finished_at = self.clock()
        self._publish(
            job.progress_key,
            status="complete",
            percentage=100,
            processed_images=metrics.processed,
            failed_images=metrics.failed,
            current_image=None,
            estimated_time_remaining=0,
            message="Export complete",
        )
        _logger.info(
            "Export of session %s complete: %d files, %d failed, %d batches in %.1fs",
            job.session.id,
            metrics.processed,
            metrics.failed,
            metrics.batches,
            metrics.elapsed_seconds,
        )
        self._record_export(
            job.session.id, job.user_id, "zip", job.filename, metrics.processed
        )

    async def _read_with_retry(
        self, check: FileCheck, semaphore: asyncio.Semaphore, deadline: float
    ) -> bytes | None:
        read_file = check.path.read_bytes  # type: ignore[union-attr]
        attempt = 0
        async with semaphore:
            while True:
                remaining = deadline - self.clock()
                if remaining <= 0:
                    raise ExportTimeoutError(self.config.timeout_seconds)
                try:
                    return await asyncio.wait_for(
                        asyncio.to_thread(read_file), timeout=remaining
                    )
                except TimeoutError as exc:
                    raise ExportTimeoutError(self.config.timeout_seconds) from exc
                except OSError as exc:
                    attempt += 1
                    if attempt >= self.config.max_retry_attempts:
                        if not self.config.continue_on_error:
                            raise ExportFileError(
                                f"Failed to read {check.record.filename}: {exc}"
                            ) from exc
                        _logger.warning(
                            "Skipping %s after %d attempts: %s",
                            check.record.filename,
                            attempt,
                            exc,
                        )
                        return None
                    delay = backoff_delay(self.config.retry_base_delay_seconds, attempt)
                    _logger.info(
                        "Retrying %s in %.2fs (attempt %d): %s",
                        check.record.filename,
                        delay,
                        attempt,
                        exc,
                    )
                    await asyncio.sleep(delay)

    def _report_file(self, job: ExportJob, current: str | None) -> None:
        metrics = job.metrics
        done = metrics.done
        percentage = min(99, done * 100 // metrics.total) if metrics.total else 0
        elapsed = self.clock() - metrics.started_at
        remaining = None
        if done and elapsed > 0:
            remaining = round(elapsed / done * (metrics.total - done), 1)
        if current is not None and done % self.config.log_progress_interval == 0:
            _logger.info(
                "Export of session %s: %d/%d files (%d failed)",
                job.session.id,
                done,
                metrics.total,
                metrics.failed,
            )
        changes: dict[str, object] = {
            "processed_images": metrics.processed,
            "failed_images": metrics.failed,
            "percentage": percentage,
            "estimated_time_remaining": remaining,
        }
        if current is not None:
            changes["current_image"] = current
            changes["message"] = f"Processing {current}"
        else:
            changes["message"] = f"Finished batch {metrics.batches}"
        self._publish(job.progress_key, **changes)

    def _publish(self, key: str, **changes: object) -> None:
        try:
            self.progress.update(key, **changes)
        except Exception:
            _logger.exception("Failed to publish export progress for %s", key)

    def _record_export(
        self,
        session_id: UUID,
        user_id: str,
        export_format: ExportFormat,
        filename: str,
        image_count: int,
    ) -> None:
        record = ExportRecord(
            id=uuid4(),
            exported_at=datetime.now(tz=UTC),
            exported_by=user_id,
            format=export_format,
            file_path=filename,
            image_count=image_count,
        )
        try:
            session = self.store.get_session(session_id)
            if session is None:
                return
            self.store.update_session(
                session_id, {"export_history": [*session.export_history, record]}
            )
        except StorageError:
            _logger.exception("Failed to record export of session %s", session_id)
