"""Teardown of slot resources.

Resources are deleted in dependency order: instance, then its OS disk, then
the interface, its public address, the subnet and finally the virtual
network. Teardown is best effort. A resource that is already gone counts as
deleted. Any other failure is logged and reported, and the remaining
deletions still run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from ipback.errors import ProviderError, ResourceNotFound
from ipback.events import ResourceDeleted, emit
from ipback.providers.gateway import ProviderGateway, delete
from ipback.retry import RateLimiter
from ipback.state import ResourceRegistry
from ipback.types import ResourceKind, ResourceRef, Slot

TEARDOWN_ORDER: tuple[ResourceKind, ...] = (
    ResourceKind.VIRTUAL_MACHINE,
    ResourceKind.DISK,
    ResourceKind.NETWORK_INTERFACE,
    ResourceKind.PUBLIC_IP_ADDRESS,
    ResourceKind.SUBNET,
    ResourceKind.VIRTUAL_NETWORK,
)


@dataclass(slots=True)
class TeardownReport:
    slot: int
    deleted: list[ResourceRef] = field(default_factory=list)
    missing: list[ResourceRef] = field(default_factory=list)
    failed: list[tuple[ResourceRef, ProviderError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def teardown_order(refs: Iterable[ResourceRef]) -> list[ResourceRef]:
    return sorted(refs, key=lambda ref: TEARDOWN_ORDER.index(ref.kind))


class Reaper:
    def __init__(self, gateway: ProviderGateway, limiter: RateLimiter) -> None:
        self._gateway = gateway
        self._limiter = limiter

    async def teardown(self, slot: int, refs: Iterable[ResourceRef]) -> TeardownReport:
        report = TeardownReport(slot=slot)
        log = logger.bind(slot=slot)
        for ref in teardown_order(refs):
            try:
                await self._limiter.call(
                    lambda ref=ref: delete(self._gateway, ref),
                    label=f"delete {ref.name}",
                    slot=slot,
                )
            except ResourceNotFound:
                log.debug("{ref} already deleted", ref=ref)
                report.missing.append(ref)
                continue
            except ProviderError as e:
                log.warning("Failed to delete {ref}: {err}", ref=ref, err=e)
                report.failed.append((ref, e))
                continue
            log.info("Deleted {ref}", ref=ref)
            report.deleted.append(ref)
            emit(ResourceDeleted(slot=slot, resource=str(ref)))
        return report

    async def teardown_registered(self, registry: ResourceRegistry, slots: Iterable[int]) -> list[TeardownReport]:
        """Tear down what ``registry`` recorded for each of ``slots``, slots in parallel."""
        targets = [s for s in slots if registry.resources(s)]
        return list(await asyncio.gather(*(self.teardown(s, registry.resources(s)) for s in targets)))

    async def teardown_slots(self, slots: Iterable[Slot]) -> list[TeardownReport]:
        """Tear down every deterministic resource name of ``slots``, registered or not."""
        return list(
            await asyncio.gather(
                *(self.teardown(slot.index, [slot.ref(kind) for kind in TEARDOWN_ORDER]) for slot in slots)
            )
        )
