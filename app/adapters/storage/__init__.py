"""Structure persistence adapters."""

from app.adapters.storage.base import (
    AbstractStructureRepository,
    InsertOutcome,
    SampleQuery,
    Structure,
    StructureDraft,
    UserStats,
)
from app.adapters.storage.factory import create_structure_repository
from app.adapters.storage.in_memory import InMemoryStructureRepository
from app.adapters.storage.sqlite import SqliteStructureRepository

__all__ = [
    "AbstractStructureRepository",
    "InMemoryStructureRepository",
    "InsertOutcome",
    "SampleQuery",
    "SqliteStructureRepository",
    "Structure",
    "StructureDraft",
    "UserStats",
    "create_structure_repository",
]
