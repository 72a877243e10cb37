"""Bounded, newest-first history of document snapshots.

The ledger keeps the ``max_versions`` most recently created versions.
Saving past the bound evicts the oldest. Versions are immutable once
created; ids are millisecond timestamps forced strictly increasing so two
saves within the same millisecond never collide.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from plainness.annotate.chunker import count_words
from plainness.store.gateway import PersistenceGateway

log = logging.getLogger(__name__)

MAX_VERSIONS = 5


@dataclass(frozen=True)
class Version:
    """A full-document snapshot."""

    id: int
    content: str
    label: str
    created_at: str
    word_count: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Version:
        return cls(
            id=int(data["id"]),
            content=str(data["content"]),
            label=str(data.get("label", "")),
            created_at=str(data.get("created_at", "")),
            word_count=int(data.get("word_count", count_words(str(data["content"])))),
        )


class VersionLedger:
    """Newest-first version list persisted through the gateway.

    Parameters
    ----------
    gateway:
        Persistence gateway; the list is loaded on construction and written
        back after every change.
    max_versions:
        Retention bound.
    clock:
        Wall-clock time source in seconds. Injected by tests.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        max_versions: int = MAX_VERSIONS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_versions < 1:
            raise ValueError(f"max_versions must be >= 1, got {max_versions}")
        self._gateway = gateway
        self._max = max_versions
        self._clock = clock
        self._versions: list[Version] = self._load()

    def _load(self) -> list[Version]:
        raw = self._gateway.load_versions() or []
        versions: list[Version] = []
        for item in raw:
            try:
                versions.append(Version.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("Skipping unreadable version record: %s", exc)
        return versions[: self._max]

    def _persist(self) -> bool:
        return self._gateway.save_versions([v.to_dict() for v in self._versions])

    def _next_id(self, now: float) -> int:
        candidate = int(now * 1000)
        if self._versions:
            candidate = max(candidate, max(v.id for v in self._versions) + 1)
        return candidate

    def versions(self) -> list[Version]:
        """Return the versions, newest first."""
        return list(self._versions)

    def __len__(self) -> int:
        return len(self._versions)

    def get(self, version_id: int) -> Version | None:
        for v in self._versions:
            if v.id == version_id:
                return v
        return None

    def save_version(self, content: str, label: str | None = None) -> Version:
        """Snapshot *content* as the newest version.

        An empty or missing label becomes ``"Version {n+1}"``. A failed
        write is logged by the gateway; the in-memory ledger is updated
        regardless.
        """
        now = self._clock()
        version = Version(
            id=self._next_id(now),
            content=content,
            label=label or f"Version {len(self._versions) + 1}",
            created_at=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            word_count=count_words(content),
        )
        self._versions.insert(0, version)
        del self._versions[self._max:]
        self._persist()
        log.info("Saved version %d (%s, %d words)", version.id, version.label, version.word_count)
        return version

    def restore_version(self, version_id: int) -> str | None:
        """Return the content of *version_id*, or None if it is not in the ledger."""
        version = self.get(version_id)
        return version.content if version else None

    def delete_version(self, version_id: int) -> bool:
        """Remove *version_id*. Missing ids are a no-op; returns whether one was removed."""
        before = len(self._versions)
        self._versions = [v for v in self._versions if v.id != version_id]
        if len(self._versions) == before:
            return False
        self._persist()
        return True
