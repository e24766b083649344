"""Request bodies for the Azure management SDK.

Pure functions turning provider-neutral specs plus the :class:`Azure` config
into the plain dicts accepted by ``begin_create_or_update``. The SDK
deserializes dicts into its models, so no model classes are needed here.
"""

from __future__ import annotations

import secrets
import string
from typing import Any

from ipback.types import (
    InstanceSpec,
    InterfaceSpec,
    NetworkSpec,
    PublicAddressSpec,
    ResourceKind,
    ResourceRef,
    ResourceSpec,
    SubnetSpec,
)

from .config import Azure

type Body = dict[str, Any]

IP_CONFIG_NAME = "ipConfig"
MANAGED_BY_TAG = "ipback"


def _tags(config: Azure) -> dict[str, str]:
    return {"managed-by": MANAGED_BY_TAG, **config.tags}


def virtual_network_body(config: Azure) -> Body:
    return {
        "location": config.location,
        "address_space": {"address_prefixes": [config.address_space]},
        "tags": _tags(config),
    }


def subnet_body(config: Azure) -> Body:
    return {"address_prefix": config.subnet_prefix}


def network_interface_body(config: Azure, spec: InterfaceSpec) -> Body:
    """Interface with exactly one IP configuration.

    The configuration list is sent whole, so any previously bound public
    address is replaced (or dropped when ``spec.public_address_id`` is None).
    """
    ip_config: Body = {
        "name": IP_CONFIG_NAME,
        "private_ip_allocation_method": "Dynamic",
        "subnet": {"id": spec.subnet_id},
    }
    if spec.public_address_id is not None:
        ip_config["public_ip_address"] = {"id": spec.public_address_id}
    return {
        "location": config.location,
        "ip_configurations": [ip_config],
        "tags": _tags(config),
    }


def public_address_body(config: Azure) -> Body:
    return {
        "location": config.location,
        "sku": {"name": config.public_ip_sku},
        "public_ip_allocation_method": config.public_ip_allocation,
        "public_ip_address_version": "IPv4",
        "tags": _tags(config),
    }


def generate_password(length: int = 24) -> str:
    """Random password meeting Azure's complexity rules (3 of 4 classes)."""
    alphabet = string.ascii_letters + string.digits + "!@#%^*-_"
    while True:
        candidate = "".join(secrets.choice(alphabet) for _ in range(length))
        if (
            any(c.islower() for c in candidate)
            and any(c.isupper() for c in candidate)
            and any(c.isdigit() for c in candidate)
        ):
            return candidate


def _os_profile(config: Azure, computer_name: str) -> Body:
    profile: Body = {
        "computer_name": computer_name,
        "admin_username": config.admin_username,
    }
    if config.ssh_public_key:
        profile["linux_configuration"] = {
            "disable_password_authentication": True,
            "ssh": {
                "public_keys": [
                    {
                        "path": f"/home/{config.admin_username}/.ssh/authorized_keys",
                        "key_data": config.ssh_public_key.strip(),
                    }
                ]
            },
        }
    else:
        profile["admin_password"] = config.admin_password or generate_password()
    return profile


def virtual_machine_body(config: Azure, spec: InstanceSpec) -> Body:
    body: Body = {
        "location": config.location,
        "identity": {"type": "None"},
        "hardware_profile": {"vm_size": config.vm_size},
        "storage_profile": {
            "image_reference": {
                "publisher": config.image_publisher,
                "offer": config.image_offer,
                "sku": config.image_sku,
                "version": config.image_version,
            },
            "os_disk": {
                "name": spec.disk_name,
                "create_option": "FromImage",
                "caching": "ReadWrite",
                "managed_disk": {"storage_account_type": config.os_disk_type},
            },
        },
        "os_profile": _os_profile(config, spec.computer_name),
        "network_profile": {"network_interfaces": [{"id": spec.interface_id}]},
        "tags": _tags(config),
    }
    if spec.spot:
        body["priority"] = "Spot"
        body["eviction_policy"] = "Deallocate"
        body["billing_profile"] = {"max_price": -1}
    else:
        body["priority"] = "Regular"
    return body


def build_body(config: Azure, ref: ResourceRef, spec: ResourceSpec) -> Body:
    """Dispatch on (kind, spec). Raises TypeError on a mismatched pair."""
    match ref.kind, spec:
        case ResourceKind.VIRTUAL_NETWORK, NetworkSpec():
            return virtual_network_body(config)
        case ResourceKind.SUBNET, SubnetSpec():
            return subnet_body(config)
        case ResourceKind.NETWORK_INTERFACE, InterfaceSpec():
            return network_interface_body(config, spec)
        case ResourceKind.PUBLIC_IP_ADDRESS, PublicAddressSpec():
            return public_address_body(config)
        case ResourceKind.VIRTUAL_MACHINE, InstanceSpec():
            return virtual_machine_body(config, spec)
        case _:
            raise TypeError(f"Cannot create {ref} from {type(spec).__name__}")
