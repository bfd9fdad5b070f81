"""
Publisher allow-list store.

An ``AuthSnapshot`` is immutable: the ID tuple and its membership index are
built together by ``from_ids`` and never change afterwards. ``AuthStore`` holds
a reference to the current snapshot; publishing replaces that reference in a
single assignment, so readers always see a complete snapshot without locking.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthSnapshot:
    """Immutable view of the publisher allow list."""
    pub_ids: Tuple[str, ...]
    index: FrozenSet[str] = field(repr=False)

    @classmethod
    def from_ids(cls, pub_ids: Iterable[str]) -> "AuthSnapshot":
        ids = tuple(pub_ids)
        return cls(pub_ids=ids, index=frozenset(ids))

    def is_authorized(self, pub_id: str) -> bool:
        """Exact, case-sensitive membership check."""
        return pub_id in self.index

    def __len__(self) -> int:
        return len(self.index)


def is_authorized(snapshot: AuthSnapshot, pub_id: str) -> bool:
    return snapshot.is_authorized(pub_id)


class AuthStore:
    """
    Process-wide holder of the current ``AuthSnapshot``.

    ``current()`` is a plain attribute read and ``publish()`` a plain attribute
    assignment; both are atomic under the interpreter, so a reader racing a
    reload gets either the old or the new snapshot.
    """

    def __init__(self, snapshot: Optional[AuthSnapshot] = None) -> None:
        self._snapshot = snapshot

    @property
    def has_snapshot(self) -> bool:
        return self._snapshot is not None

    def current(self) -> AuthSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise RuntimeError("AuthStore has no published snapshot")
        return snapshot

    def publish(self, snapshot: AuthSnapshot) -> None:
        self._snapshot = snapshot
        logger.debug("Auth snapshot published", pub_ids_count=len(snapshot))
