from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar


H = TypeVar("H")


@dataclass(frozen=True)
class UndoSnapshot(Generic[H]):
    handle: H
    markers: tuple[float, ...]
    locked: tuple[float, ...]


class UndoManager(Generic[H]):
    """Single-level undo: the newest capture replaces any older one."""

    def __init__(self) -> None:
        self._snapshot: UndoSnapshot[H] | None = None
        self._previous: UndoSnapshot[H] | None = None

    @property
    def can_undo(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> UndoSnapshot[H] | None:
        return self._snapshot

    def capture(self, handle: H, markers: Sequence[float], locked: Sequence[float]) -> UndoSnapshot[H]:
        # Keep the displaced snapshot until the edit commits so a failed
        # edit can put it back.
        self._previous = self._snapshot
        self._snapshot = UndoSnapshot(handle, tuple(float(m) for m in markers), tuple(float(x) for x in locked))
        return self._snapshot

    def commit(self) -> None:
        self._previous = None

    def rollback(self) -> None:
        """Drop the capture made for an edit that did not complete."""
        self._snapshot = self._previous
        self._previous = None

    def take(self) -> UndoSnapshot[H] | None:
        snap = self._snapshot
        self._snapshot = None
        self._previous = None
        return snap

    def clear(self) -> None:
        self._snapshot = None
        self._previous = None
