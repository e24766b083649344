"""Slot provisioner: builds one slot's network stack and compute instance.

Order is fixed by dependencies: virtual network → subnet → network
interface (no public address yet) → compute instance. Every step is a
create-or-update awaited to terminal success through the rate limiter.
A fatal error is not retried; it comes back to the coordinator as a
:class:`BuildFailed` outcome.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ipback.events import SlotProvisioned, SlotProvisioning, emit
from ipback.providers.gateway import ProviderGateway, create_or_update
from ipback.retry import RateLimiter
from ipback.state import ResourceRegistry, RunState
from ipback.types import (
    InstanceSpec,
    InterfaceSpec,
    NetworkSpec,
    Resource,
    ResourceRef,
    ResourceSet,
    ResourceSpec,
    Slot,
    SubnetSpec,
)

# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Built:
    slot: int
    resources: ResourceSet


@dataclass(frozen=True, slots=True)
class BuildFailed:
    slot: int
    error: Exception


@dataclass(frozen=True, slots=True)
class BuildSkipped:
    """Stopped before finishing because another slot aborted the run."""

    slot: int


type BuildOutcome = Built | BuildFailed | BuildSkipped


class _Skipped(Exception):
    pass


# =============================================================================
# Provisioner
# =============================================================================


class SlotProvisioner:
    def __init__(
        self,
        slot: Slot,
        gateway: ProviderGateway,
        limiter: RateLimiter,
        state: RunState,
        registry: ResourceRegistry,
        *,
        spot: bool = True,
    ) -> None:
        self.slot = slot
        self._gateway = gateway
        self._limiter = limiter
        self._state = state
        self._registry = registry
        self._spot = spot
        self._log = logger.bind(slot=slot.index)

    async def _create(self, ref: ResourceRef, spec: ResourceSpec) -> Resource:
        if self._state.aborted:
            raise _Skipped()
        resource = await self._limiter.call(
            lambda: create_or_update(self._gateway, ref, spec),
            label=f"create {ref.name}",
            slot=self.slot.index,
        )
        self._registry.register(self.slot.index, ref)
        return resource

    async def build(self) -> ResourceSet:
        """Create the slot's resources in order. Raises on fatal errors."""
        slot = self.slot
        self._log.info("Creating virtual machine {name}...", name=slot.virtual_machine.name)
        emit(SlotProvisioning(slot=slot.index))

        vnet = await self._create(slot.virtual_network, NetworkSpec())
        self._log.info("Created virtual network {id}", id=vnet.id)

        subnet = await self._create(slot.subnet, SubnetSpec())
        self._log.info("Created subnet {id}", id=subnet.id)

        nic = await self._create(slot.network_interface, InterfaceSpec(subnet_id=subnet.id))
        self._log.info("Created network interface {id}", id=nic.id)

        vm = await self._create(
            slot.virtual_machine,
            InstanceSpec(
                interface_id=nic.id,
                disk_name=slot.disk.name,
                computer_name=slot.virtual_machine.name,
                spot=self._spot,
            ),
        )
        # The OS disk is created implicitly with the instance.
        self._registry.register(slot.index, slot.disk)
        self._log.info("Created virtual machine {id}", id=vm.id)

        emit(SlotProvisioned(slot=slot.index, virtual_machine_id=vm.id))
        return ResourceSet(
            slot=slot,
            virtual_network=vnet,
            subnet=subnet,
            network_interface=nic,
            virtual_machine=vm,
            disk=slot.disk,
        )

    async def run(self) -> BuildOutcome:
        """:meth:`build`, with errors turned into an outcome."""
        try:
            return Built(slot=self.slot.index, resources=await self.build())
        except _Skipped:
            self._log.info("Run aborted elsewhere, stopping build")
            return BuildSkipped(slot=self.slot.index)
        except Exception as e:
            self._log.error("Build failed: {err}", err=e)
            return BuildFailed(slot=self.slot.index, error=e)
