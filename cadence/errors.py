"""Exceptions raised by the duration engine."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .services.synchronizer import SyncReport


class DurationError(Exception):
    """Base class for duration engine failures."""


class UnknownEntityType(DurationError, LookupError):
    def __init__(self, entity_type: object) -> None:
        self.entity_type = entity_type
        super().__init__(f"Type d'entité inconnu : {entity_type!r}")


class BatchPersistenceError(DurationError):
    """Flushing or committing a batch failed and the batch was rolled back.

    ``report`` holds what was synchronised before the failure; the batches
    committed earlier in the same call stay committed.
    """

    def __init__(
        self,
        entity_type: str,
        batch_index: int,
        report: "SyncReport",
        cause: BaseException,
    ) -> None:
        self.entity_type = entity_type
        self.batch_index = batch_index
        self.report = report
        self.cause = cause
        super().__init__(
            f"Échec de l'enregistrement du lot {batch_index} ({entity_type}) : {cause}"
        )
