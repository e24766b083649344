"""Core types: resource references, slots, and provider-neutral request specs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

__all__ = [
    "ResourceKind",
    "ResourceRef",
    "Resource",
    "Naming",
    "Slot",
    "ResourceSet",
    "AddressBinding",
    "NetworkSpec",
    "SubnetSpec",
    "InterfaceSpec",
    "InstanceSpec",
    "PublicAddressSpec",
    "ResourceSpec",
]


class ResourceKind(StrEnum):
    VIRTUAL_NETWORK = "virtual_network"
    SUBNET = "subnet"
    NETWORK_INTERFACE = "network_interface"
    PUBLIC_IP_ADDRESS = "public_ip_address"
    VIRTUAL_MACHINE = "virtual_machine"
    DISK = "disk"


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Address of a provider resource.

    ``parent`` is the virtual network name for subnets, ``None`` otherwise.
    """

    kind: ResourceKind
    name: str
    parent: str | None = None

    def __str__(self) -> str:
        if self.parent:
            return f"{self.kind}:{self.parent}/{self.name}"
        return f"{self.kind}:{self.name}"


@dataclass(frozen=True, slots=True)
class Resource:
    """Provider-reported state of a resource.

    ``address`` is only meaningful for public addresses and stays ``None``
    until the provider has assigned one.
    """

    ref: ResourceRef
    id: str
    address: str | None = None


# =============================================================================
# Naming & Slots
# =============================================================================


@dataclass(frozen=True, slots=True)
class Naming:
    """Base names for each resource kind. Slot ``i`` uses ``"<base>-<i>"``."""

    virtual_machine: str = "ipback-vm"
    virtual_network: str = "ipback-vnet"
    subnet: str = "ipback-subnet"
    network_interface: str = "ipback-nic"
    disk: str = "ipback-disk"
    public_ip_address: str = "ipback-pip"

    def name(self, kind: ResourceKind, index: int) -> str:
        base: str = getattr(self, kind.value)
        return f"{base}-{index}"


@dataclass(frozen=True, slots=True)
class Slot:
    """One fleet member: an index that namespaces every resource it owns."""

    index: int
    naming: Naming = Naming()

    def ref(self, kind: ResourceKind) -> ResourceRef:
        name = self.naming.name(kind, self.index)
        if kind is ResourceKind.SUBNET:
            return ResourceRef(kind, name, parent=self.naming.name(ResourceKind.VIRTUAL_NETWORK, self.index))
        return ResourceRef(kind, name)

    @property
    def virtual_network(self) -> ResourceRef:
        return self.ref(ResourceKind.VIRTUAL_NETWORK)

    @property
    def subnet(self) -> ResourceRef:
        return self.ref(ResourceKind.SUBNET)

    @property
    def network_interface(self) -> ResourceRef:
        return self.ref(ResourceKind.NETWORK_INTERFACE)

    @property
    def virtual_machine(self) -> ResourceRef:
        return self.ref(ResourceKind.VIRTUAL_MACHINE)

    @property
    def disk(self) -> ResourceRef:
        return self.ref(ResourceKind.DISK)

    @property
    def public_ip_address(self) -> ResourceRef:
        return self.ref(ResourceKind.PUBLIC_IP_ADDRESS)


@dataclass(frozen=True, slots=True)
class ResourceSet:
    """Durable resources built once per slot by the provisioner."""

    slot: Slot
    virtual_network: Resource
    subnet: Resource
    network_interface: Resource
    virtual_machine: Resource
    disk: ResourceRef


@dataclass(frozen=True, slots=True)
class AddressBinding:
    """A public address object created by a hunter for one attempt."""

    ref: ResourceRef
    id: str
    address: str | None = None


# =============================================================================
# Provider-neutral request specs
# =============================================================================


@dataclass(frozen=True, slots=True)
class NetworkSpec:
    pass


@dataclass(frozen=True, slots=True)
class SubnetSpec:
    pass


@dataclass(frozen=True, slots=True)
class InterfaceSpec:
    """Network interface with a single IP configuration.

    ``public_address_id=None`` means no public address is bound.
    """

    subnet_id: str
    public_address_id: str | None = None


@dataclass(frozen=True, slots=True)
class InstanceSpec:
    interface_id: str
    disk_name: str
    computer_name: str
    spot: bool = True


@dataclass(frozen=True, slots=True)
class PublicAddressSpec:
    pass


type ResourceSpec = NetworkSpec | SubnetSpec | InterfaceSpec | InstanceSpec | PublicAddressSpec
