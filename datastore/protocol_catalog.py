from __future__ import annotations

from functools import lru_cache
from threading import Lock
from typing import Dict, List, Mapping, Optional

from app.schemas import Protocol, ProtocolField
from models.catalog import PROTOCOL_FIELDS, PROTOCOL_INFO


class ProtocolCatalog:
    """Known protocol labels with their descriptions and connection fields."""

    def __init__(
        self,
        descriptions: Optional[Mapping[str, str]] = None,
        fields: Optional[Mapping[str, List[ProtocolField]]] = None,
    ) -> None:
        self._descriptions: Dict[str, str] = dict(PROTOCOL_INFO if descriptions is None else descriptions)
        self._fields: Dict[str, List[ProtocolField]] = dict(PROTOCOL_FIELDS if fields is None else fields)
        self._lock = Lock()

    def add(self, name: str, description: str) -> Protocol:
        label = name.strip()
        if not label:
            raise ValueError("Protocol name must not be blank.")
        with self._lock:
            if label in self._descriptions:
                raise ValueError(f"Protocol {label!r} already exists.")
            self._descriptions[label] = description.strip()
            return self._build(label)

    def get(self, name: str) -> Optional[Protocol]:
        with self._lock:
            if name not in self._descriptions:
                return None
            return self._build(name)

    def list(self) -> list[Protocol]:
        with self._lock:
            return [self._build(name) for name in self._descriptions]

    def _build(self, name: str) -> Protocol:
        fields = [field.model_copy() for field in self._fields.get(name, [])]
        return Protocol(name=name, description=self._descriptions[name], fields=fields)


@lru_cache
def build_default_catalog() -> ProtocolCatalog:
    return ProtocolCatalog()
