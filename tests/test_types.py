import pytest

from ipback.types import Naming, ResourceKind, ResourceRef, Slot

pytestmark = [pytest.mark.unit]


def test_slot_names_are_suffixed_with_index():
    slot = Slot(3)
    assert slot.virtual_machine.name == "ipback-vm-3"
    assert slot.public_ip_address.name == "ipback-pip-3"
    assert slot.disk.kind is ResourceKind.DISK


def test_subnet_ref_carries_its_network():
    slot = Slot(1, Naming(virtual_network="net", subnet="sub"))
    assert slot.subnet == ResourceRef(ResourceKind.SUBNET, "sub-1", parent="net-1")
    assert str(slot.subnet) == "subnet:net-1/sub-1"
    assert slot.virtual_network.parent is None


def test_slots_do_not_share_names():
    names = {Slot(i).ref(kind).name for i in range(4) for kind in ResourceKind}
    assert len(names) == 4 * len(ResourceKind)
