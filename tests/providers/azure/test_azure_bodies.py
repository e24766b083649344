from __future__ import annotations

import pytest

from ipback.providers.azure.bodies import (
    IP_CONFIG_NAME,
    build_body,
    generate_password,
    network_interface_body,
    public_address_body,
    virtual_machine_body,
)
from ipback.providers.azure.config import Azure
from ipback.types import InstanceSpec, InterfaceSpec, NetworkSpec, PublicAddressSpec, Slot, SubnetSpec

pytestmark = [pytest.mark.unit]

CONFIG = Azure(subscription_id="sub", resource_group="rg", location="francecentral")


class TestNetworkInterfaceBody:
    def test_without_public_address(self):
        body = network_interface_body(CONFIG, InterfaceSpec(subnet_id="/subnets/s0"))
        [ip_config] = body["ip_configurations"]
        assert ip_config["name"] == IP_CONFIG_NAME
        assert ip_config["subnet"] == {"id": "/subnets/s0"}
        assert "public_ip_address" not in ip_config

    def test_with_public_address(self):
        body = network_interface_body(CONFIG, InterfaceSpec(subnet_id="/subnets/s0", public_address_id="/pips/p0"))
        [ip_config] = body["ip_configurations"]
        assert ip_config["public_ip_address"] == {"id": "/pips/p0"}
        assert body["location"] == "francecentral"


class TestVirtualMachineBody:
    SPEC = InstanceSpec(interface_id="/nics/n0", disk_name="ipback-disk-0", computer_name="ipback-vm-0")

    def test_spot(self):
        body = virtual_machine_body(CONFIG, self.SPEC)
        assert body["priority"] == "Spot"
        assert body["eviction_policy"] == "Deallocate"
        assert body["billing_profile"] == {"max_price": -1}

    def test_on_demand(self):
        body = virtual_machine_body(CONFIG, InstanceSpec("/nics/n0", "d", "vm", spot=False))
        assert body["priority"] == "Regular"
        assert "eviction_policy" not in body

    def test_image_size_and_disk(self):
        body = virtual_machine_body(CONFIG, self.SPEC)
        assert body["hardware_profile"] == {"vm_size": "Standard_B2pts_v2"}
        image = body["storage_profile"]["image_reference"]
        assert (image["publisher"], image["sku"]) == ("Canonical", "22_04-lts-arm64")
        os_disk = body["storage_profile"]["os_disk"]
        assert os_disk["name"] == "ipback-disk-0"
        assert os_disk["managed_disk"] == {"storage_account_type": "Standard_LRS"}
        assert body["network_profile"] == {"network_interfaces": [{"id": "/nics/n0"}]}

    def test_ssh_key_disables_password(self):
        config = Azure(subscription_id="s", resource_group="rg", location="l", ssh_public_key="ssh-ed25519 AAAA me\n")
        profile = virtual_machine_body(config, self.SPEC)["os_profile"]
        assert "admin_password" not in profile
        linux = profile["linux_configuration"]
        assert linux["disable_password_authentication"] is True
        assert linux["ssh"]["public_keys"][0]["key_data"] == "ssh-ed25519 AAAA me"

    def test_explicit_password(self):
        config = Azure(subscription_id="s", resource_group="rg", location="l", admin_password="Secret-123")
        profile = virtual_machine_body(config, self.SPEC)["os_profile"]
        assert profile["admin_password"] == "Secret-123"
        assert profile["computer_name"] == "ipback-vm-0"


def test_generated_password_meets_complexity():
    password = generate_password()
    assert len(password) == 24
    assert any(c.islower() for c in password)
    assert any(c.isupper() for c in password)
    assert any(c.isdigit() for c in password)


def test_public_address_body_defaults():
    body = public_address_body(CONFIG)
    assert body["sku"] == {"name": "Standard"}
    assert body["public_ip_allocation_method"] == "Static"
    assert body["tags"]["managed-by"] == "ipback"


def test_custom_tags_are_merged():
    config = Azure(subscription_id="s", resource_group="rg", location="l", tags={"team": "net"})
    assert public_address_body(config)["tags"] == {"managed-by": "ipback", "team": "net"}


class TestBuildBody:
    def test_dispatch(self):
        slot = Slot(0)
        assert "address_space" in build_body(CONFIG, slot.virtual_network, NetworkSpec())
        assert build_body(CONFIG, slot.subnet, SubnetSpec()) == {"address_prefix": "10.1.10.0/24"}
        assert "sku" in build_body(CONFIG, slot.public_ip_address, PublicAddressSpec())

    def test_mismatched_spec_raises(self):
        with pytest.raises(TypeError, match="Cannot create"):
            build_body(CONFIG, Slot(0).virtual_machine, NetworkSpec())

    def test_disks_are_never_created_directly(self):
        with pytest.raises(TypeError):
            build_body(CONFIG, Slot(0).disk, NetworkSpec())
