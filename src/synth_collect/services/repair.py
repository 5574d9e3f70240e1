"""Bulk repair of image records whose files are not at the canonical path."""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from synth_collect.domain.images import ImageRecord
from synth_collect.errors import ImageFileNotFoundError, StorageError
from synth_collect.services.paths import (
    PathResolver,
    canonical_path,
    canonical_stored_path,
)
from synth_collect.services.storage import CollectionStore

_logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    """What a repair pass did, or would do in a dry run."""

    dry_run: bool = False
    sessions: int = 0
    images: int = 0
    unchanged: int = 0
    repointed: list[str] = field(default_factory=list)
    copied: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.repointed) + len(self.copied)

    def summary(self) -> str:
        prefix = "Would repair" if self.dry_run else "Repaired"
        return (
            f"{prefix} {self.changed} of {self.images} images in "
            f"{self.sessions} sessions: {len(self.copied)} copied, "
            f"{len(self.repointed)} re-pointed, {self.unchanged} unchanged, "
            f"{len(self.missing)} missing, {len(self.failed)} failed"
        )


@dataclass
class PathRepairService:
    """Move every image record onto its canonical file location.

    Files are copied, never moved, so a source shared by several records
    stays in place. Running the repair twice changes nothing the second time.
    """

    store: CollectionStore
    resolver: PathResolver
    data_root: Path

    def repair(self, dry_run: bool = False) -> RepairReport:
        report = RepairReport(dry_run=dry_run)
        for session in self.store.list_sessions():
            report.sessions += 1
            for record in self.store.list_images(session.id):
                report.images += 1
                self._repair_record(record, report)
        _logger.info(report.summary())
        return report

    def _repair_record(self, record: ImageRecord, report: RepairReport) -> None:
        label = f"{record.session_id}/{record.filename}"
        target = canonical_path(self.data_root, record.session_id, record.filename)
        stored = canonical_stored_path(record.session_id, record.filename)
        if target.is_file():
            if record.file_path == stored:
                report.unchanged += 1
                return
            report.repointed.append(label)
        else:
            try:
                source = self.resolver.locate(record).path
            except ImageFileNotFoundError:
                _logger.warning("No file found for image %s", label)
                report.missing.append(label)
                return
            if not report.dry_run:
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(source, target)
                except OSError as exc:
                    _logger.error("Failed to copy %s to %s: %s", source, target, exc)
                    report.failed.append(label)
                    return
            report.copied.append(label)
        if report.dry_run:
            return
        try:
            self.store.update_image(record.id, {"file_path": stored})
        except StorageError as exc:
            _logger.error("Failed to update image %s: %s", label, exc)
            report.failed.append(label)
