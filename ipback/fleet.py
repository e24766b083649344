"""Fleet coordinator.

Two phases, each an ``asyncio.gather`` over every slot:

1. build: one :class:`SlotProvisioner` per slot. Any failure aborts the run;
   partial fleets are not hunted.
2. hunt: one :class:`AddressHunter` per slot, all sharing one
   :class:`RunState` and one :class:`AttemptBudget`. The first commit ends
   the run for everyone at their next loop boundary.

No task is ever cancelled from outside. A failing task marks the run
aborted and its siblings wind down on their own, so every provider call
that was started also finishes.

Example:
    gateway = AzureGateway.create(settings.azure)
    result = await Fleet(settings.run, gateway).run()
    sys.exit(result.exit_code)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from loguru import logger

from ipback.config import RunConfig
from ipback.errors import FleetAborted
from ipback.events import RunAborted, emit
from ipback.hunter import AddressHunter, Committed, HuntFailed, HuntOutcome
from ipback.provisioner import BuildFailed, BuildOutcome, Built, SlotProvisioner
from ipback.providers.gateway import ProviderGateway
from ipback.reaper import Reaper, TeardownReport
from ipback.retry import RateLimiter
from ipback.state import AttemptBudget, ResourceRegistry, RunState
from ipback.types import Slot

type Sleep = Callable[[float], Awaitable[None]]
type FleetStatus = Literal["committed", "aborted", "exhausted"]

EXIT_COMMITTED = 0
EXIT_ABORTED = 1
EXIT_CONFIG = 2
EXIT_EXHAUSTED = 3
EXIT_INTERRUPTED = 130


@dataclass(frozen=True, slots=True)
class FleetResult:
    status: FleetStatus
    builds: tuple[BuildOutcome, ...]
    hunts: tuple[HuntOutcome, ...] = ()
    winner: Committed | None = None
    error: FleetAborted | None = None
    teardowns: tuple[TeardownReport, ...] = ()

    @property
    def exit_code(self) -> int:
        match self.status:
            case "committed":
                return EXIT_COMMITTED
            case "aborted":
                return EXIT_ABORTED
            case "exhausted":
                return EXIT_EXHAUSTED


class Fleet:
    """Runs the build and hunt phases for ``config.fleet_size`` slots."""

    def __init__(
        self,
        config: RunConfig,
        gateway: ProviderGateway,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.state = RunState()
        self.registry = ResourceRegistry()
        self.budget = AttemptBudget(config.max_attempts)
        self.limiter = RateLimiter(config.throttle_cooldown, config.throttle_markers, sleep=sleep)
        self.reaper = Reaper(gateway, self.limiter)
        self.slots = tuple(Slot(i, config.naming) for i in range(config.fleet_size))
        self._sleep = sleep

    def _abort(self, slot: int, error: BaseException) -> None:
        if self.state.abort(slot):
            logger.bind(slot=slot).error("Aborting run: {err}", err=error)
            emit(RunAborted(slot=slot, message=str(error)))

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    async def provision(self) -> tuple[BuildOutcome, ...]:
        async def _build(slot: Slot) -> BuildOutcome:
            provisioner = SlotProvisioner(
                slot, self.gateway, self.limiter, self.state, self.registry, spot=self.config.spot,
            )
            outcome = await provisioner.run()
            if isinstance(outcome, BuildFailed):
                self._abort(outcome.slot, outcome.error)
            return outcome

        logger.info("Creating {n} virtual machine(s)...", n=len(self.slots))
        return tuple(await asyncio.gather(*(_build(s) for s in self.slots)))

    async def hunt(self) -> tuple[HuntOutcome, ...]:
        async def _hunt(slot: Slot) -> HuntOutcome:
            hunter = AddressHunter(
                slot,
                self.config.target_address,
                self.gateway,
                self.limiter,
                self.state,
                budget=self.budget,
                registry=self.registry,
                settle_delay=self.config.settle_delay,
                sleep=self._sleep,
            )
            outcome = await hunter.run()
            if isinstance(outcome, HuntFailed):
                self._abort(outcome.slot, outcome.error)
            return outcome

        logger.info("Hunting for {target} on {n} slot(s)...", target=self.config.target_address, n=len(self.slots))
        return tuple(await asyncio.gather(*(_hunt(s) for s in self.slots)))

    async def _teardown_all(self) -> tuple[TeardownReport, ...]:
        if not self.config.teardown_on_abort:
            logger.warning("Leaving resources of {n} slot(s) in place", n=len(self.registry.slots()))
            return ()
        return tuple(await self.reaper.teardown_registered(self.registry, self.registry.slots()))

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run(self) -> FleetResult:
        builds = await self.provision()
        failure = next((b for b in builds if isinstance(b, BuildFailed)), None)
        if failure is not None or not all(isinstance(b, Built) for b in builds):
            error = FleetAborted(failure.slot, failure.error) if failure else None
            return FleetResult(status="aborted", builds=builds, error=error, teardowns=await self._teardown_all())
        logger.info("All {n} slot(s) provisioned", n=len(builds))

        hunts = await self.hunt()
        winner = next((h for h in hunts if isinstance(h, Committed)), None)

        if winner is not None:
            teardowns: tuple[TeardownReport, ...] = ()
            if not self.config.keep_losers:
                losers = [s.index for s in self.slots if s.index != winner.slot]
                teardowns = tuple(await self.reaper.teardown_registered(self.registry, losers))
            logger.bind(slot=winner.slot).info(
                "Slot {slot} holds {ip} after {n} attempt(s)",
                slot=winner.slot,
                ip=winner.binding.address,
                n=winner.attempts,
            )
            return FleetResult(status="committed", builds=builds, hunts=hunts, winner=winner, teardowns=teardowns)

        hunt_failure = next((h for h in hunts if isinstance(h, HuntFailed)), None)
        if hunt_failure is not None:
            return FleetResult(
                status="aborted",
                builds=builds,
                hunts=hunts,
                error=FleetAborted(hunt_failure.slot, hunt_failure.error),
                teardowns=await self._teardown_all(),
            )

        logger.warning("Attempt budget of {n} exhausted without a match", n=self.budget.total)
        return FleetResult(status="exhausted", builds=builds, hunts=hunts)
