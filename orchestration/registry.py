"""
Export Registry
Write-once store for values published by units and read by their dependents
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import DuplicateKeyError, ExportTypeError, UnresolvedKeyError

ExportValue = Union[str, Tuple[str, ...]]


@dataclass(frozen=True)
class ExportEntry:
    key: str
    value: ExportValue
    producer: Optional[str]
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    restored: bool = False

    @property
    def is_list(self) -> bool:
        return isinstance(self.value, tuple)


def _normalize(key: str, value) -> ExportValue:
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        if not all(isinstance(item, str) for item in value):
            raise ExportTypeError(key, "list exports may only contain strings")
        return tuple(value)
    raise ExportTypeError(key, f"unsupported value type {type(value).__name__}")


class ExportRegistry:
    """
    Append-only mapping from namespaced export keys to published values

    Keys are written at most once. Reading a key that was never published
    raises UnresolvedKeyError instead of returning a default.
    """

    def __init__(self):
        self._entries: Dict[str, ExportEntry] = {}
        self._lock = threading.Lock()

    def publish(self, key: str, value: Union[str, Iterable[str]], producer: Optional[str] = None) -> ExportEntry:
        """Publish a single value (string or list of strings)"""
        return self.publish_all(producer, {key: value})[0]

    def publish_all(self, producer: Optional[str], outputs: Mapping[str, Union[str, Iterable[str]]],
                    restored: bool = False) -> List[ExportEntry]:
        """
        Publish a batch of values atomically

        Args:
            producer: Unit publishing the values
            outputs: Mapping of export key to value
            restored: True when the values come from a previous run's output store

        Returns:
            The created entries, in mapping order

        Raises:
            DuplicateKeyError: If any key is already published; nothing is written
            ExportTypeError: If any value is not a string or list of strings
        """
        entries = [
            ExportEntry(key=key, value=_normalize(key, value), producer=producer, restored=restored)
            for key, value in outputs.items()
        ]
        with self._lock:
            for entry in entries:
                existing = self._entries.get(entry.key)
                if existing is not None:
                    raise DuplicateKeyError(entry.key, existing.producer)
            for entry in entries:
                self._entries[entry.key] = entry
        return entries

    def entry(self, key: str) -> ExportEntry:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise UnresolvedKeyError(key)
        return entry

    def resolve(self, key: str) -> str:
        """Resolve a scalar export; list exports are a type error"""
        entry = self.entry(key)
        if entry.is_list:
            raise ExportTypeError(key, "is a list export, use resolve_list")
        return entry.value

    def resolve_list(self, key: str) -> List[str]:
        """Resolve a multi-valued export; a scalar comes back as a one-element list"""
        entry = self.entry(key)
        if entry.is_list:
            return list(entry.value)
        return [entry.value]

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def published_by(self, producer: str) -> List[str]:
        with self._lock:
            return [key for key, entry in self._entries.items() if entry.producer == producer]

    def as_dict(self) -> Dict[str, Union[str, List[str]]]:
        with self._lock:
            return {
                key: list(entry.value) if entry.is_list else entry.value
                for key, entry in self._entries.items()
            }

    def view(self, producers: Optional[Iterable[str]] = None) -> "RegistryView":
        return RegistryView(self, producers)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RegistryView:
    """
    Read-only window onto an ExportRegistry

    When producers are given, only exports published by those units are
    visible. Units receive a view scoped to their transitive dependencies, so a
    value published by an unrelated branch is never readable.
    """

    def __init__(self, registry: ExportRegistry, producers: Optional[Iterable[str]] = None):
        self._registry = registry
        self._producers = frozenset(producers) if producers is not None else None

    def _visible(self, key: str) -> ExportEntry:
        entry = self._registry.entry(key)
        if self._producers is not None and entry.producer not in self._producers:
            raise UnresolvedKeyError(key)
        return entry

    def resolve(self, key: str) -> str:
        self._visible(key)
        return self._registry.resolve(key)

    def resolve_list(self, key: str) -> List[str]:
        self._visible(key)
        return self._registry.resolve_list(key)

    def contains(self, key: str) -> bool:
        try:
            self._visible(key)
        except UnresolvedKeyError:
            return False
        return True

    def keys(self) -> List[str]:
        return [key for key in self._registry.keys() if self.contains(key)]

    __contains__ = contains
