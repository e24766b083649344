"""Algebraic Data Type (ADT) for run events, plus a context-local dispatcher.

Events cover both phases of a run:
- Build: SlotProvisioning, SlotProvisioned
- Hunt: AddressAllocated, AddressObserved, AddressReleased, AddressCommitted, HuntStopped
- Provider: Throttled, ResourceDeleted
- Errors: RunAborted

Consumers pattern-match:

    def on_event(event):
        match event:
            case AddressObserved(slot=slot, address=address):
                print(f"slot {slot} got {address}")
            case AddressCommitted(slot=slot):
                print(f"slot {slot} won")

    with use_callback(on_event):
        await fleet.run()

The callback lives in a ContextVar, so tasks started inside the ``with`` block
inherit it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

# =============================================================================
# Build Phase Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class SlotProvisioning:
    """Provisioner started building a slot."""

    slot: int


@dataclass(frozen=True, slots=True)
class SlotProvisioned:
    """All durable resources of a slot reached terminal success."""

    slot: int
    virtual_machine_id: str


# =============================================================================
# Hunt Phase Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class AddressAllocated:
    slot: int
    attempt: int
    address_id: str


@dataclass(frozen=True, slots=True)
class AddressObserved:
    """Address read back after the settle delay. ``None`` if none assigned yet."""

    slot: int
    attempt: int
    address: str | None
    matched: bool


@dataclass(frozen=True, slots=True)
class AddressReleased:
    """A losing address was detached and deleted."""

    slot: int
    attempt: int
    address: str | None


@dataclass(frozen=True, slots=True)
class AddressCommitted:
    slot: int
    attempt: int
    address: str


@dataclass(frozen=True, slots=True)
class HuntStopped:
    """A hunter stopped without committing."""

    slot: int
    attempts: int
    reason: str  # "cancelled", "exhausted", "failed"


# =============================================================================
# Provider Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class Throttled:
    """A provider call was throttled and will be retried after ``cooldown``."""

    operation: str
    attempt: int
    cooldown: float


@dataclass(frozen=True, slots=True)
class ResourceDeleted:
    slot: int
    resource: str


# =============================================================================
# Error Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class RunAborted:
    slot: int
    message: str


type IPBackEvent = (
    SlotProvisioning
    | SlotProvisioned
    | AddressAllocated
    | AddressObserved
    | AddressReleased
    | AddressCommitted
    | HuntStopped
    | Throttled
    | ResourceDeleted
    | RunAborted
)

type Callback = Callable[[IPBackEvent], None]


# =============================================================================
# Dispatch
# =============================================================================

_callback: ContextVar[Callback | None] = ContextVar("ipback_cb", default=None)


def emit(event: IPBackEvent) -> None:
    """Send ``event`` to the active callback, if any."""
    cb = _callback.get()
    if cb is not None:
        cb(event)


def compose(*callbacks: Callback) -> Callback:
    """Fan one event out to several callbacks, in order."""
    match callbacks:
        case []:
            return lambda _: None
        case [single]:
            return single
        case _:

            def combined(event: IPBackEvent) -> None:
                for cb in callbacks:
                    cb(event)

            return combined


@contextmanager
def use_callback(cb: Callback) -> Iterator[None]:
    token = _callback.set(cb)
    try:
        yield
    finally:
        _callback.reset(token)


__all__ = [
    "SlotProvisioning",
    "SlotProvisioned",
    "AddressAllocated",
    "AddressObserved",
    "AddressReleased",
    "AddressCommitted",
    "HuntStopped",
    "Throttled",
    "ResourceDeleted",
    "RunAborted",
    "IPBackEvent",
    "Callback",
    "emit",
    "compose",
    "use_callback",
]
