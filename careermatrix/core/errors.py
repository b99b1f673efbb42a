# careermatrix/core/errors.py

from __future__ import annotations

from typing import Optional


class MatrixError(Exception):
    """Base class for every error raised by the matrix engine."""


class NotFoundReferenceError(MatrixError, LookupError):
    def __init__(self, entity: str, entity_id: object, message: Optional[str] = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} with id '{entity_id}' does not exist")


class DuplicateIdError(MatrixError, ValueError):
    def __init__(self, entity: str, entity_id: object, message: Optional[str] = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} with id '{entity_id}' already exists")


class DuplicateCapabilityError(DuplicateIdError):
    """A capability already exists for the same (job level, criterion) pair."""

    def __init__(self, job_level_id: str, criterion_id: str) -> None:
        self.job_level_id = job_level_id
        self.criterion_id = criterion_id
        super().__init__(
            "Capability",
            f"{job_level_id}/{criterion_id}",
            f"Capability for job level '{job_level_id}' and criterion '{criterion_id}' already exists",
        )


class MalformedFilterError(MatrixError, ValueError):
    pass


class StoreUnavailableError(MatrixError, RuntimeError):
    pass
