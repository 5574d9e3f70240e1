"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from synth_collect.adapters.json_storage import JsonFileStorage
from synth_collect.adapters.supabase_storage import SupabaseStorage
from synth_collect.config import Settings
from synth_collect.services.exports import ExportService
from synth_collect.services.images import ImageService
from synth_collect.services.imports import ImportService
from synth_collect.services.paths import PathResolver
from synth_collect.services.progress import InMemoryProgressStore, ProgressStore
from synth_collect.services.repair import PathRepairService
from synth_collect.services.sessions import SessionService
from synth_collect.services.storage import CollectionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    store: CollectionStore
    progress_store: ProgressStore
    session_service: SessionService
    image_service: ImageService
    export_service: ExportService
    import_service: ImportService
    repair_service: PathRepairService
    close_resources: Callable[[], Awaitable[None]]


def build_store(settings: Settings) -> CollectionStore:
    """Create the metadata store selected by settings."""
    if settings.storage_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY are required "
                "for the supabase storage backend"
            )
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseStorage(client, settings.data_root)
    return JsonFileStorage(settings.data_root)


def build_container(
    settings: Settings | None = None,
    store: CollectionStore | None = None,
    progress_store: ProgressStore | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    data_root = resolved_settings.data_root
    resolved_store = store or build_store(resolved_settings)
    resolved_progress = progress_store or InMemoryProgressStore()
    resolver = PathResolver(data_root, resolved_store)
    session_service = SessionService(resolved_store, data_root)
    export_service = ExportService(
        sessions=session_service,
        store=resolved_store,
        resolver=resolver,
        progress=resolved_progress,
        config=resolved_settings.export_config(),
    )
    import_service = ImportService(session_service, resolved_store, data_root)

    async def close_resources() -> None:
        resolved_progress.sweep(0, 0)

    return AppContainer(
        settings=resolved_settings,
        store=resolved_store,
        progress_store=resolved_progress,
        session_service=session_service,
        image_service=ImageService(resolved_store, resolver),
        export_service=export_service,
        import_service=import_service,
        repair_service=PathRepairService(resolved_store, resolver, data_root),
        close_resources=close_resources,
    )
