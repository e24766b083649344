"""End-of-run summary built from the event stream."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text

from ipback.events import (
    AddressCommitted,
    AddressObserved,
    AddressReleased,
    HuntStopped,
    IPBackEvent,
    ResourceDeleted,
    RunAborted,
    SlotProvisioned,
    Throttled,
)


@dataclass(slots=True)
class SlotStats:
    attempts: int = 0
    released: int = 0
    deleted: int = 0
    last_address: str | None = None
    provisioned: bool = False
    outcome: str = "-"


@dataclass(slots=True)
class RunSummary:
    """Event callback that tallies per-slot activity.

    Install with ``use_callback(summary)`` and print ``summary.render()``
    once the run is over.
    """

    target_address: str
    slots: dict[int, SlotStats] = field(default_factory=dict)
    throttles: int = 0
    winner: int | None = None
    aborted_by: int | None = None
    started_at: float = field(default_factory=time.monotonic)

    def _slot(self, index: int) -> SlotStats:
        return self.slots.setdefault(index, SlotStats())

    def __call__(self, event: IPBackEvent) -> None:
        match event:
            case SlotProvisioned(slot=slot):
                self._slot(slot).provisioned = True
            case AddressObserved(slot=slot, attempt=attempt, address=address):
                stats = self._slot(slot)
                stats.attempts = max(stats.attempts, attempt)
                stats.last_address = address
            case AddressReleased(slot=slot):
                self._slot(slot).released += 1
            case AddressCommitted(slot=slot, address=address):
                self.winner = slot
                stats = self._slot(slot)
                stats.last_address = address
                stats.outcome = "committed"
            case HuntStopped(slot=slot, reason=reason):
                self._slot(slot).outcome = reason
            case Throttled():
                self.throttles += 1
            case ResourceDeleted(slot=slot):
                self._slot(slot).deleted += 1
            case RunAborted(slot=slot):
                self.aborted_by = slot
            case _:
                pass

    @property
    def total_attempts(self) -> int:
        return sum(s.attempts for s in self.slots.values())

    def render(self, now: float | None = None) -> RenderableType:
        now = now if now is not None else time.monotonic()

        overview = Table(
            title="Run Summary\n",
            title_style="bold",
            title_justify="center",
            show_header=False,
            show_edge=False,
            box=None,
            padding=(0, 2),
        )
        overview.add_column("key", style="bright_black", min_width=12)
        overview.add_column("value")

        overview.add_row("Target", Text(self.target_address))
        if self.winner is not None:
            overview.add_row("Result", Text(f"acquired by slot {self.winner}", style="green bold"))
        elif self.aborted_by is not None:
            overview.add_row("Result", Text(f"aborted by slot {self.aborted_by}", style="red bold"))
        else:
            overview.add_row("Result", Text("not acquired", style="yellow bold"))
        overview.add_row("Attempts", Text(str(self.total_attempts)))
        overview.add_row("Throttled", Text(str(self.throttles)))
        overview.add_row("Duration", Text(_format_duration(now - self.started_at)))

        breakdown = Table(
            title="Slots\n",
            title_style="bold",
            title_justify="center",
            show_edge=False,
            box=None,
            padding=(0, 2),
            header_style="bold bright_black",
        )
        breakdown.add_column("Slot", justify="right")
        breakdown.add_column("Attempts", justify="right")
        breakdown.add_column("Released", justify="right")
        breakdown.add_column("Last address")
        breakdown.add_column("Outcome")

        for index in sorted(self.slots):
            stats = self.slots[index]
            style = "green" if stats.outcome == "committed" else "red" if stats.outcome == "failed" else ""
            breakdown.add_row(
                str(index),
                str(stats.attempts),
                str(stats.released),
                stats.last_address or "-",
                Text(stats.outcome, style=style),
            )

        return Group(overview, Text(""), breakdown)


def _format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.0f}s"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}m {secs:02d}s" if minutes < 60 else f"{minutes // 60}h {minutes % 60:02d}m"
