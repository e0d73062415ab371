"""Factory pattern for creating structure repositories."""

import logging

from app.adapters.storage.base import AbstractStructureRepository
from app.adapters.storage.in_memory import InMemoryStructureRepository
from app.adapters.storage.sqlite import SqliteStructureRepository
from app.core.config import DatabaseSettings
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_structure_repository(database_settings: DatabaseSettings) -> AbstractStructureRepository:
    """Instantiate the repository selected by DATABASE_BACKEND.

    SQLite repositories get their schema applied before being returned.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    backend = database_settings.backend.lower()

    if backend == "memory":
        logger.info("storage.ready", extra={"backend": backend})
        return InMemoryStructureRepository()

    if backend == "sqlite":
        repository = SqliteStructureRepository(
            database_settings.path,
            busy_timeout_seconds=database_settings.busy_timeout_seconds,
        )
        repository.apply_schema()
        logger.info("storage.ready", extra={"backend": backend, "path": database_settings.path})
        return repository

    raise ValidationAppError(
        code="storage_unknown_backend",
        message=f"Unknown storage backend: '{backend}'. Supported backends: memory, sqlite",
    )
