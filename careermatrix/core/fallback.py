# careermatrix/core/fallback.py

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from careermatrix.core.models import SeedPayload
from careermatrix.core.stores import InMemoryMatrixStore
from careermatrix.seeding import seed_store

SAMPLE_MATRIX_PATH = Path(__file__).resolve().parent.parent / "data" / "sample_matrix.json"


def load_sample_matrix_payload(path: Optional[Path] = None) -> Dict[str, Any]:
    return json.loads((path or SAMPLE_MATRIX_PATH).read_text(encoding="utf-8"))


class FallbackDataProvider(ABC):
    """Read-only data served when the primary store cannot be read."""
    name: str

    @abstractmethod
    def store(self) -> InMemoryMatrixStore:
        """Return a populated store to read the fallback snapshot from."""
        ...


class StaticFallbackProvider(FallbackDataProvider):
    """Seeds a private in-memory store from a fixed payload on first use."""

    def __init__(self, payload: Union[SeedPayload, Mapping[str, Any]], name: str = "static") -> None:
        self.name = name
        self._payload = payload
        self._store: Optional[InMemoryMatrixStore] = None
        self._lock = threading.Lock()

    def store(self) -> InMemoryMatrixStore:
        with self._lock:
            if self._store is None:
                store = InMemoryMatrixStore()
                seed_store(store, self._payload)
                self._store = store
            return self._store


class SampleMatrixFallback(StaticFallbackProvider):
    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__(load_sample_matrix_payload(path), name="sample")
