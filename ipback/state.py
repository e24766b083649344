"""Shared run state: the cancellation flag, the attempt budget and the registry.

All three are only touched from the event loop thread. Each check-and-set
below runs without an intervening ``await``, which makes it atomic with
respect to every other task.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from ipback.types import ResourceKind, ResourceRef


class RunStatus(StrEnum):
    RUNNING = "running"
    COMMITTED = "committed"
    ABORTED = "aborted"


class RunState:
    """Process-wide cancellation flag.

    Starts RUNNING. Moves to COMMITTED exactly once, by the first slot that
    calls :meth:`commit`, or to ABORTED on the first fatal error. Terminal
    statuses are never left.
    """

    __slots__ = ("_status", "_winner", "_aborted_by")

    def __init__(self) -> None:
        self._status = RunStatus.RUNNING
        self._winner: int | None = None
        self._aborted_by: int | None = None

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def cancelled(self) -> bool:
        return self._status is not RunStatus.RUNNING

    @property
    def committed(self) -> bool:
        return self._status is RunStatus.COMMITTED

    @property
    def aborted(self) -> bool:
        return self._status is RunStatus.ABORTED

    @property
    def winner(self) -> int | None:
        return self._winner

    @property
    def aborted_by(self) -> int | None:
        return self._aborted_by

    def commit(self, slot: int) -> bool:
        """Claim the win for ``slot``. Returns False if the run already ended."""
        if self._status is not RunStatus.RUNNING:
            return False
        self._status = RunStatus.COMMITTED
        self._winner = slot
        return True

    def abort(self, slot: int) -> bool:
        """Mark the run aborted by ``slot``. No-op once the run has ended."""
        if self._status is not RunStatus.RUNNING:
            return False
        self._status = RunStatus.ABORTED
        self._aborted_by = slot
        return True

    def __repr__(self) -> str:
        return f"RunState({self._status}, winner={self._winner}, aborted_by={self._aborted_by})"


class AttemptBudget:
    """Fleet-wide cap on hunt iterations, shared by every hunter.

    ``total=None`` is unbounded. The cap is independent of the fleet size:
    a budget of 100 over 4 slots lets whichever slots are fastest take the
    tokens.
    """

    __slots__ = ("_total", "_taken")

    def __init__(self, total: int | None = None) -> None:
        if total is not None and total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        self._total = total
        self._taken = 0

    @property
    def total(self) -> int | None:
        return self._total

    @property
    def taken(self) -> int:
        return self._taken

    @property
    def remaining(self) -> int | None:
        if self._total is None:
            return None
        return self._total - self._taken

    def try_acquire(self) -> bool:
        if self._total is not None and self._taken >= self._total:
            return False
        self._taken += 1
        return True


@dataclass(slots=True)
class ResourceRegistry:
    """Resources that reached terminal success, per slot, in creation order."""

    _by_slot: dict[int, dict[ResourceKind, ResourceRef]] = field(default_factory=dict)

    def register(self, slot: int, ref: ResourceRef) -> None:
        self._by_slot.setdefault(slot, {})[ref.kind] = ref

    def forget(self, slot: int, ref: ResourceRef) -> None:
        refs = self._by_slot.get(slot)
        if refs is not None and refs.get(ref.kind) == ref:
            del refs[ref.kind]

    def resources(self, slot: int) -> tuple[ResourceRef, ...]:
        return tuple(self._by_slot.get(slot, {}).values())

    def slots(self) -> tuple[int, ...]:
        return tuple(sorted(self._by_slot))

    def __contains__(self, ref: object) -> bool:
        return any(ref in refs.values() for refs in self._by_slot.values())
