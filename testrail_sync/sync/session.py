"""Session-scoped identity maps for one synchronization."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional


class _IdentityMap:
    """External id -> TestRail id, with one lock per external id."""

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, external_id: str) -> Optional[int]:
        return self._ids.get(external_id)

    def set(self, external_id: str, remote_id: int) -> None:
        self._ids[external_id] = remote_id

    def lock(self, external_id: str) -> asyncio.Lock:
        return self._locks[external_id]

    def as_dict(self) -> dict[str, int]:
        return dict(self._ids)

    def clear(self) -> None:
        self._ids.clear()
        self._locks.clear()

    def __contains__(self, external_id: object) -> bool:
        return external_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class CaseMapping(_IdentityMap):
    """External test id -> TestRail case id."""

    def __init__(self) -> None:
        super().__init__()
        self.created: set[str] = set()
        self._title_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def title_lock(self, title: str) -> asyncio.Lock:
        """Lock shared by every external test whose title matches case-insensitively."""
        return self._title_locks[title.casefold()]

    def mark_created(self, external_id: str) -> None:
        self.created.add(external_id)

    def clear(self) -> None:
        super().clear()
        self.created.clear()
        self._title_locks.clear()


class RunMapping(_IdentityMap):
    """External suite id -> TestRail run id. At most one run per suite id."""


@dataclass
class SyncSession:
    """Owns the identity maps for the lifetime of one synchronization.

    Reusing a session across ``sync`` calls reuses its runs and cases;
    a fresh session starts from empty maps.
    """

    case_mapping: CaseMapping = field(default_factory=CaseMapping)
    run_mapping: RunMapping = field(default_factory=RunMapping)
