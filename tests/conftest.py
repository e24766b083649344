"""In-memory provider gateway and helpers shared by the unit tests."""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from ipback.errors import ProviderError, ResourceNotFound
from ipback.types import (
    InstanceSpec,
    InterfaceSpec,
    NetworkSpec,
    Resource,
    ResourceKind,
    ResourceRef,
    ResourceSpec,
    Slot,
    SubnetSpec,
)

THROTTLED = "SubscriptionRequestsThrottled"


def throttled(what: str = "create") -> ProviderError:
    return ProviderError(f"{what}: {THROTTLED}: too many requests", code=THROTTLED, status=429)


def fatal(what: str = "create") -> ProviderError:
    return ProviderError(f"{what}: quota exceeded", code="OperationNotAllowed", status=409)


@dataclass(frozen=True, slots=True)
class Call:
    op: str  # "create", "delete", "get"
    ref: ResourceRef
    spec: ResourceSpec | None = None


class FakeOperation:
    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    async def result(self) -> Any:
        await asyncio.sleep(0)
        return self._fn()


@dataclass
class FakeGateway:
    """Provider gateway backed by dicts.

    - ``script(slot, *addresses)`` queues the addresses handed to that slot's
      public address creations, in order. Unscripted creations get addresses
      from 198.51.100.0/24.
    - ``inject(op, ref, *errors)`` makes the next calls of ``op`` on ``ref``
      raise ``errors``, one per call.
    - deleting a public address that is still bound to an interface fails.
    """

    resources: dict[ResourceRef, Resource] = field(default_factory=dict)
    bound: dict[str, str | None] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)
    closed: bool = False
    _addresses: dict[str, deque[str]] = field(default_factory=lambda: defaultdict(deque))
    _errors: dict[tuple[str, ResourceRef], deque[Exception]] = field(default_factory=lambda: defaultdict(deque))
    _spare: Any = field(default_factory=lambda: (f"198.51.100.{i % 250 + 1}" for i in itertools.count()))

    # -- scripting --------------------------------------------------------

    def script(self, slot: Slot | int, *addresses: str) -> None:
        slot = slot if isinstance(slot, Slot) else Slot(slot)
        self._addresses[slot.public_ip_address.name].extend(addresses)

    def inject(self, op: str, ref: ResourceRef, *errors: Exception) -> None:
        self._errors[(op, ref)].extend(errors)

    def _raise_injected(self, op: str, ref: ResourceRef) -> None:
        queue = self._errors.get((op, ref))
        if queue:
            raise queue.popleft()

    # -- inspection -------------------------------------------------------

    def created(self, kind: ResourceKind | None = None) -> list[ResourceRef]:
        return [c.ref for c in self.calls if c.op == "create" and (kind is None or c.ref.kind is kind)]

    def deleted(self, kind: ResourceKind | None = None) -> list[ResourceRef]:
        return [c.ref for c in self.calls if c.op == "delete" and (kind is None or c.ref.kind is kind)]

    def exists(self, ref: ResourceRef) -> bool:
        return ref in self.resources

    # -- ProviderGateway --------------------------------------------------

    @staticmethod
    def _id(ref: ResourceRef) -> str:
        return f"/subscriptions/fake/resourceGroups/rg/providers/{ref.kind}/{ref.name}"

    def _apply_create(self, ref: ResourceRef, spec: ResourceSpec) -> Resource:
        address = None
        match spec:
            case InterfaceSpec(public_address_id=pid):
                self.bound[ref.name] = pid
            case InstanceSpec(disk_name=disk_name):
                disk = ResourceRef(ResourceKind.DISK, disk_name)
                self.resources[disk] = Resource(ref=disk, id=self._id(disk))
        if ref.kind is ResourceKind.PUBLIC_IP_ADDRESS:
            existing = self.resources.get(ref)
            if existing is not None:
                address = existing.address
            else:
                queue = self._addresses.get(ref.name)
                address = queue.popleft() if queue else next(self._spare)
        resource = Resource(ref=ref, id=self._id(ref), address=address)
        self.resources[ref] = resource
        return resource

    def _apply_delete(self, ref: ResourceRef) -> None:
        if ref not in self.resources:
            raise ResourceNotFound(f"delete {ref}: not found", code="ResourceNotFound", status=404)
        if ref.kind is ResourceKind.PUBLIC_IP_ADDRESS and self._id(ref) in self.bound.values():
            raise ProviderError(f"delete {ref}: still attached", code="PublicIPAddressInUse", status=400)
        del self.resources[ref]
        if ref.kind is ResourceKind.NETWORK_INTERFACE:
            self.bound.pop(ref.name, None)

    async def begin_create_or_update(self, ref: ResourceRef, spec: ResourceSpec) -> FakeOperation:
        self.calls.append(Call("create", ref, spec))
        await asyncio.sleep(0)
        self._raise_injected("create", ref)
        return FakeOperation(lambda: self._apply_create(ref, spec))

    async def begin_delete(self, ref: ResourceRef) -> FakeOperation:
        self.calls.append(Call("delete", ref))
        await asyncio.sleep(0)
        self._raise_injected("delete", ref)
        return FakeOperation(lambda: self._apply_delete(ref))

    async def get(self, ref: ResourceRef) -> Resource:
        self.calls.append(Call("get", ref))
        await asyncio.sleep(0)
        self._raise_injected("get", ref)
        if ref not in self.resources:
            raise ResourceNotFound(f"get {ref}: not found", code="ResourceNotFound", status=404)
        return self.resources[ref]

    async def close(self) -> None:
        self.closed = True


class FakeSleep:
    """Records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sleep() -> FakeSleep:
    return FakeSleep()


def provision(gateway: FakeGateway, slot: Slot) -> None:
    """Build ``slot``'s durable resources directly, bypassing the provisioner."""
    gateway._apply_create(slot.virtual_network, NetworkSpec())
    subnet = gateway._apply_create(slot.subnet, SubnetSpec())
    nic = gateway._apply_create(slot.network_interface, InterfaceSpec(subnet_id=subnet.id))
    gateway._apply_create(
        slot.virtual_machine,
        InstanceSpec(interface_id=nic.id, disk_name=slot.disk.name, computer_name=slot.virtual_machine.name),
    )
