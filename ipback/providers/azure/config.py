"""Azure provider configuration.

Immutable configuration dataclass for the Azure gateway. Everything here is
mechanical request-body material (image, size, CIDRs, SKUs); the acquisition
engine never reads it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

type PublicIPSku = Literal["Standard", "Basic"]
type AllocationMethod = Literal["Static", "Dynamic"]


@dataclass(frozen=True, slots=True)
class Azure:
    """Azure provider configuration.

    Example:
        >>> from ipback.providers.azure import Azure
        >>> config = Azure(subscription_id="...", resource_group="rg-ipback", location="francecentral")

    Args:
        subscription_id: Subscription that owns the resource group.
        resource_group: Existing resource group all slot resources live in.
        location: Azure region, e.g. ``francecentral``.
        vm_size: Compute size. Small burstable ARM sizes are the cheapest tickets.
        image_publisher, image_offer, image_sku, image_version: Marketplace image.
        os_disk_type: Managed disk storage account type.
        admin_username: Local admin user on the instance.
        admin_password: Password auth. Ignored when ``ssh_public_key`` is set.
            A random password is generated when both are unset.
        ssh_public_key: OpenSSH public key text for key-based auth.
        address_space: Virtual network CIDR.
        subnet_prefix: Subnet CIDR inside ``address_space``.
        public_ip_sku: Public IP SKU.
        public_ip_allocation: Allocation method. Standard SKU requires Static.
        thread_pool_size: Worker threads for the blocking SDK clients.
        tags: Extra tags applied to every resource.
    """

    subscription_id: str = ""
    resource_group: str = ""
    location: str = ""
    vm_size: str = "Standard_B2pts_v2"
    image_publisher: str = "Canonical"
    image_offer: str = "0001-com-ubuntu-server-jammy"
    image_sku: str = "22_04-lts-arm64"
    image_version: str = "latest"
    os_disk_type: str = "Standard_LRS"
    admin_username: str = "azureuser"
    admin_password: str | None = None
    ssh_public_key: str | None = None
    address_space: str = "10.1.0.0/16"
    subnet_prefix: str = "10.1.10.0/24"
    public_ip_sku: PublicIPSku = "Standard"
    public_ip_allocation: AllocationMethod = "Static"
    thread_pool_size: int = 16
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def type(self) -> str: return "azure"
