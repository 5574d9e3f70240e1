"""Session import from JSON documents and ZIP bundles."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path, PurePath

from synth_collect.adapters.archive import ArchiveReader, normalize_entry_path
from synth_collect.domain.bundles import METADATA_ENTRY, Bundle, BundleImage
from synth_collect.domain.images import ImageDimensions, ImageRecord, NewImage
from synth_collect.domain.sessions import SessionRecord
from synth_collect.domain.transfer import DuplicateMatch, ImportOptions, ImportResult
from synth_collect.errors import (
    ArchiveEntryError,
    ArchiveEntryNotFoundError,
    BundleDecodeError,
    BundleValidationError,
    FileVerificationError,
    SessionAccessError,
    StorageError,
)
from synth_collect.services.bundles import load_bundle_json, portable_image_path
from synth_collect.services.paths import canonical_path, canonical_stored_path
from synth_collect.services.sessions import SessionService
from synth_collect.services.storage import CollectionStore

_logger = logging.getLogger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"


@dataclass
class DecodedUpload:
    bundle: Bundle
    archive: ArchiveReader | None = None

    def close(self) -> None:
        if self.archive is not None:
            self.archive.close()


def decode_upload(filename: str, content: bytes) -> DecodedUpload:
    """Parse an uploaded ``.json`` or ``.zip`` file into a validated bundle."""
    lowered = filename.lower()
    if lowered.endswith(".json"):
        return DecodedUpload(bundle=load_bundle_json(content))
    if not (lowered.endswith(".zip") or content.startswith(_ZIP_MAGIC)):
        raise BundleDecodeError("Unsupported file type")
    archive = ArchiveReader(content)
    try:
        if not archive.has(METADATA_ENTRY):
            raise BundleDecodeError(
                "Invalid import file: metadata.json not found in archive"
            )
        bundle = load_bundle_json(archive.read_bytes(METADATA_ENTRY))
    except Exception:
        archive.close()
        raise
    return DecodedUpload(bundle=bundle, archive=archive)


def find_duplicate(
    incoming: BundleImage, existing: list[ImageRecord]
) -> DuplicateMatch | None:
    """Match by stored name, then original name, then prompt and generator."""
    for record in existing:
        if record.filename == incoming.filename:
            return DuplicateMatch(record, incoming, "same_name")
    for record in existing:
        if record.original_filename == incoming.original_filename:
            return DuplicateMatch(record, incoming, "same_original_name")
    for record in existing:
        if (
            record.prompt == incoming.prompt
            and record.generator_used == incoming.generator_used
        ):
            return DuplicateMatch(record, incoming, "same_prompt")
    return None


def rename_filename(filename: str, taken: set[str]) -> str:
    """Return ``stem_N.ext`` with the lowest N from 1 that is not taken."""
    path = PurePath(filename)
    counter = 1
    while True:
        candidate = f"{path.stem}_{counter}{path.suffix}"
        if candidate not in taken:
            return candidate
        counter += 1


def write_verified(path: Path, content: bytes) -> None:
    """Write a file and confirm it landed with the expected size."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if not path.is_file() or path.stat().st_size != len(content):
        raise FileVerificationError(path, len(content))


@dataclass
class _ImportState:
    session: SessionRecord
    existing: list[ImageRecord]
    taken: set[str]
    result: ImportResult


@dataclass
class ImportService:
    """Validate bundles and reconcile their images into a session."""

    sessions: SessionService
    store: CollectionStore
    data_root: Path

    async def import_bundle(
        self,
        filename: str,
        content: bytes,
        options: ImportOptions,
        user_id: str,
    ) -> ImportResult:
        """Import an uploaded bundle.

        Failures before any entry is processed return an unsuccessful result
        with nothing imported. Per-entry problems are reported in ``errors``
        and counted as skipped.
        """
        try:
            decoded = await asyncio.to_thread(decode_upload, filename, content)
        except BundleValidationError as exc:
            return ImportResult(success=False, errors=list(exc.errors))
        except BundleDecodeError as exc:
            return ImportResult(success=False, errors=[str(exc)])
        try:
            return await self._import_decoded(decoded, options, user_id)
        finally:
            decoded.close()

    async def _import_decoded(
        self, decoded: DecodedUpload, options: ImportOptions, user_id: str
    ) -> ImportResult:
        bundle = decoded.bundle
        try:
            session = self._target_session(bundle, options, user_id)
            existing = (
                self.store.list_images(session.id) if options.mode == "merge" else []
            )
        except (SessionAccessError, StorageError) as exc:
            return ImportResult(success=False, errors=[str(exc)])

        state = _ImportState(
            session=session,
            existing=existing,
            taken={record.filename for record in existing},
            result=ImportResult(success=True, session_id=session.id),
        )
        _logger.info(
            "Importing %d images into session %s (%s, duplicates=%s)",
            len(bundle.images),
            session.id,
            options.mode,
            options.duplicate_strategy,
        )
        async with self.sessions.locks.for_session(session.id):
            for index, entry in enumerate(bundle.images):
                try:
                    await self._import_entry(index, entry, decoded, options, state)
                except StorageError as exc:
                    _logger.error("Import into %s aborted: %s", session.id, exc)
                    state.result.skipped += len(bundle.images) - index
                    state.result.errors.append(f"Import aborted: {exc}")
                    state.result.success = False
                    break

        result = state.result
        _logger.info(
            "Import into session %s finished: %d imported, %d skipped, %d errors",
            session.id,
            result.imported,
            result.skipped,
            len(result.errors),
        )
        return result

    def _target_session(
        self, bundle: Bundle, options: ImportOptions, user_id: str
    ) -> SessionRecord:
        if options.mode == "merge":
            return self.sessions.get_owned_session(
                options.target_session_id, user_id  # type: ignore[arg-type]
            )
        today = datetime.now(tz=UTC).date().isoformat()
        return self.store.create_session(
            name=f"{bundle.session.name} (Imported)",
            created_by=user_id,
            description=bundle.session.description or f"Imported on {today}",
            status="active",
        )

    async def _import_entry(
        self,
        index: int,
        entry: BundleImage,
        decoded: DecodedUpload,
        options: ImportOptions,
        state: _ImportState,
    ) -> None:
        result = state.result
        if not entry.filename.strip() or not entry.original_filename.strip():
            result.errors.append(f"Image {index + 1}: missing filename")
            result.skipped += 1
            return

        filename = entry.filename
        if options.mode == "merge":
            match = find_duplicate(entry, state.existing)
            if match is not None:
                _logger.info(
                    "Duplicate %s (%s of %s): %s",
                    entry.filename,
                    match.reason,
                    match.existing.filename,
                    options.duplicate_strategy,
                )
                if options.duplicate_strategy == "skip":
                    result.skipped += 1
                    return
                if options.duplicate_strategy == "replace":
                    await asyncio.to_thread(self.store.delete_image, match.existing.id)
                    state.existing.remove(match.existing)
                    state.taken.discard(match.existing.filename)
        if filename in state.taken:
            filename = rename_filename(filename, state.taken)

        file_size = entry.file_size
        if decoded.archive is not None:
            searched = (
                normalize_entry_path(entry.file_path)
                if entry.file_path
                else portable_image_path(entry.filename)
            )
            entry_name = decoded.archive.locate(entry.file_path, entry.filename)
            if entry_name is None:
                error = ArchiveEntryNotFoundError(entry.original_filename, searched)
                result.errors.append(str(error))
                result.skipped += 1
                return
            destination = canonical_path(self.data_root, state.session.id, filename)
            try:
                content = decoded.archive.read_bytes(entry_name)
                await asyncio.to_thread(write_verified, destination, content)
            except (ArchiveEntryError, FileVerificationError, OSError) as exc:
                result.errors.append(f"{entry.original_filename}: {exc}")
                result.skipped += 1
                return
            file_size = len(content)

        dimensions = entry.image_dimensions
        self.store.create_image(
            NewImage(
                session_id=state.session.id,
                filename=filename,
                original_filename=entry.original_filename,
                file_path=canonical_stored_path(state.session.id, filename),
                file_size=file_size,
                image_dimensions=ImageDimensions(
                    width=dimensions.width, height=dimensions.height
                ),
                prompt=entry.prompt,
                generator_used=entry.generator_used,
                uploaded_by=state.session.created_by,
                generation_settings=entry.generation_settings,
                user_description=entry.user_description,
                ai_scores=dict(entry.ai_scores or {}),
                quality_rating=entry.quality_rating,
                tags=list(entry.tags or []),
                notes=entry.notes,
            )
        )
        state.taken.add(filename)
        result.imported += 1
