"""Address hunter: the per-slot allocate → attach → observe → decide loop.

States::

    Allocating → Attaching → Observing ─┬─ match, commit won → Committed
         ▲                              └─ otherwise → Retrying (detach + delete)
         └────────────────────────────────────────────────┘

Run state and the attempt budget are checked only at the top of the loop.
An iteration that has started always runs to its end, teardown included, so
no address is ever left half-attached when a hunter stops. The slot that
commits keeps its address bound to the interface: that is the output of
the run.
"""

from __future__ import annotations

import asyncio
import ipaddress
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from ipback.events import (
    AddressAllocated,
    AddressCommitted,
    AddressObserved,
    AddressReleased,
    HuntStopped,
    emit,
)
from ipback.providers.gateway import ProviderGateway, create_or_update, delete
from ipback.retry import RateLimiter
from ipback.state import AttemptBudget, ResourceRegistry, RunState
from ipback.types import AddressBinding, InterfaceSpec, PublicAddressSpec, Slot

type Sleep = Callable[[float], Awaitable[None]]


def same_address(observed: str | None, target: str) -> bool:
    """Compare two textual IP addresses by value, not spelling."""
    if observed is None:
        return False
    try:
        return ipaddress.ip_address(observed) == ipaddress.ip_address(target)
    except ValueError:
        return False


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Committed:
    slot: int
    attempts: int
    binding: AddressBinding


@dataclass(frozen=True, slots=True)
class Stopped:
    """Another slot ended the run."""

    slot: int
    attempts: int


@dataclass(frozen=True, slots=True)
class Exhausted:
    """The fleet-wide attempt budget ran out."""

    slot: int
    attempts: int


@dataclass(frozen=True, slots=True)
class HuntFailed:
    slot: int
    attempts: int
    error: Exception


type HuntOutcome = Committed | Stopped | Exhausted | HuntFailed


# =============================================================================
# Hunter
# =============================================================================


class AddressHunter:
    def __init__(
        self,
        slot: Slot,
        target_address: str,
        gateway: ProviderGateway,
        limiter: RateLimiter,
        state: RunState,
        *,
        budget: AttemptBudget | None = None,
        registry: ResourceRegistry | None = None,
        settle_delay: float = 10.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.slot = slot
        self.target_address = target_address
        self._gateway = gateway
        self._limiter = limiter
        self._state = state
        self._budget = budget or AttemptBudget()
        self._registry = registry or ResourceRegistry()
        self._settle_delay = settle_delay
        self._sleep = sleep
        self.attempts = 0
        self._log = logger.bind(slot=slot.index)
        self._ledger = self._log.bind(ledger=True)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def allocate(self) -> AddressBinding:
        ref = self.slot.public_ip_address
        resource = await self._limiter.call(
            lambda: create_or_update(self._gateway, ref, PublicAddressSpec()),
            label=f"create {ref.name}",
            slot=self.slot.index,
        )
        self._registry.register(self.slot.index, ref)
        self._log.info("Created public IP address {id}", id=resource.id)
        emit(AddressAllocated(slot=self.slot.index, attempt=self.attempts, address_id=resource.id))
        return AddressBinding(ref=ref, id=resource.id, address=resource.address)

    async def _bind(self, public_address_id: str | None) -> None:
        """Re-issue the interface with exactly one (or no) public address."""
        nic = await self._gateway.get(self.slot.network_interface)
        subnet = await self._gateway.get(self.slot.subnet)
        spec = InterfaceSpec(subnet_id=subnet.id, public_address_id=public_address_id)
        action = "associate" if public_address_id else "dissociate"
        await self._limiter.call(
            lambda: create_or_update(self._gateway, nic.ref, spec),
            label=f"{action} {nic.ref.name}",
            slot=self.slot.index,
        )

    async def attach(self, binding: AddressBinding) -> None:
        await self._bind(binding.id)
        self._log.info("Public IP associated with {nic}", nic=self.slot.network_interface.name)

    async def observe(self, binding: AddressBinding) -> AddressBinding:
        await self._sleep(self._settle_delay)
        resource = await self._gateway.get(binding.ref)
        return AddressBinding(ref=binding.ref, id=binding.id, address=resource.address)

    async def release(self, binding: AddressBinding) -> None:
        """Detach then delete; both finish before the next iteration starts."""
        await self._bind(None)
        self._log.info("Public IP dissociated from {nic}", nic=self.slot.network_interface.name)
        await self._limiter.call(
            lambda: delete(self._gateway, binding.ref),
            label=f"delete {binding.ref.name}",
            slot=self.slot.index,
        )
        self._registry.forget(self.slot.index, binding.ref)
        self._log.info("Public IP address {name} deleted", name=binding.ref.name)
        emit(AddressReleased(slot=self.slot.index, attempt=self.attempts, address=binding.address))

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    async def hunt(self) -> Committed | Stopped | Exhausted:
        """Loop until committed, cancelled or out of budget. Raises on fatal errors."""
        while True:
            if self._state.cancelled:
                return Stopped(slot=self.slot.index, attempts=self.attempts)
            if not self._budget.try_acquire():
                return Exhausted(slot=self.slot.index, attempts=self.attempts)
            self.attempts += 1

            binding = await self.allocate()
            await self.attach(binding)
            binding = await self.observe(binding)

            matched = same_address(binding.address, self.target_address)
            emit(AddressObserved(slot=self.slot.index, attempt=self.attempts, address=binding.address, matched=matched))

            if matched and self._state.commit(self.slot.index):
                self._ledger.info(
                    "Slot {slot}: allocated IP address matches the desired IP address: {ip} [Success]",
                    slot=self.slot.index,
                    ip=binding.address,
                )
                emit(AddressCommitted(slot=self.slot.index, attempt=self.attempts, address=binding.address or ""))
                return Committed(slot=self.slot.index, attempts=self.attempts, binding=binding)

            if matched:
                self._ledger.info(
                    "Slot {slot}: allocated IP address matches ({ip}) but slot {winner} already ended the run",
                    slot=self.slot.index,
                    ip=binding.address,
                    winner=self._state.winner,
                )
            else:
                self._ledger.info(
                    "Slot {slot}: allocated IP address ({ip}) does not match the desired IP address ({target})",
                    slot=self.slot.index,
                    ip=binding.address,
                    target=self.target_address,
                )
            await self.release(binding)

    async def run(self) -> HuntOutcome:
        """:meth:`hunt`, with fatal errors turned into an outcome."""
        try:
            outcome = await self.hunt()
        except Exception as e:
            self._log.error("Hunt failed on attempt {n}: {err}", n=self.attempts, err=e)
            emit(HuntStopped(slot=self.slot.index, attempts=self.attempts, reason="failed"))
            return HuntFailed(slot=self.slot.index, attempts=self.attempts, error=e)

        match outcome:
            case Stopped():
                self._log.info("Run ended by another slot after {n} attempt(s)", n=self.attempts)
                emit(HuntStopped(slot=self.slot.index, attempts=self.attempts, reason="cancelled"))
            case Exhausted():
                self._log.info("Attempt budget exhausted after {n} attempt(s)", n=self.attempts)
                emit(HuntStopped(slot=self.slot.index, attempts=self.attempts, reason="exhausted"))
        return outcome
