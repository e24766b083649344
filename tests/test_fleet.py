"""Coordinator: build phase, parallel hunt, cancellation and loser teardown."""

from __future__ import annotations

import pytest

from ipback.config import RunConfig
from ipback.errors import FleetAborted
from ipback.events import RunAborted, use_callback
from ipback.fleet import EXIT_ABORTED, EXIT_COMMITTED, EXIT_EXHAUSTED, Fleet
from ipback.hunter import Committed, Exhausted, HuntFailed, Stopped
from ipback.provisioner import BuildFailed
from ipback.types import ResourceKind, Slot
from tests.conftest import FakeGateway, FakeSleep, fatal

pytestmark = [pytest.mark.unit, pytest.mark.timeout(30)]

TARGET = "20.19.8.7"


def _config(**kwargs) -> RunConfig:
    return RunConfig(**{"fleet_size": 3, "target_address": TARGET, **kwargs})


@pytest.mark.asyncio
async def test_first_match_wins_and_others_stop(gateway: FakeGateway, sleep: FakeSleep):
    gateway.script(1, "1.1.1.1", TARGET)
    fleet = Fleet(_config(keep_losers=True), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.status == "committed"
    assert result.exit_code == EXIT_COMMITTED
    assert isinstance(result.winner, Committed)
    assert result.winner.slot == 1
    assert result.winner.attempts == 2
    assert fleet.state.winner == 1

    others = [h for h in result.hunts if h.slot != 1]
    assert all(isinstance(h, Stopped) for h in others)

    # every losing address was detached and deleted; only the winner's remains
    pips = [ref for ref in gateway.resources if ref.kind is ResourceKind.PUBLIC_IP_ADDRESS]
    assert pips == [Slot(1).public_ip_address]
    assert result.teardowns == ()


@pytest.mark.asyncio
async def test_losers_are_torn_down_after_commit(gateway: FakeGateway, sleep: FakeSleep):
    gateway.script(0, TARGET)
    fleet = Fleet(_config(), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.winner is not None and result.winner.slot == 0
    assert sorted(r.slot for r in result.teardowns) == [1, 2]
    assert all(r.ok for r in result.teardowns)

    for index in (1, 2):
        slot = Slot(index)
        for kind in ResourceKind:
            assert not gateway.exists(slot.ref(kind)), slot.ref(kind)

    winner = Slot(0)
    for kind in ResourceKind:
        assert gateway.exists(winner.ref(kind)), winner.ref(kind)


@pytest.mark.asyncio
async def test_loser_teardown_follows_dependency_order(gateway: FakeGateway, sleep: FakeSleep):
    gateway.script(0, TARGET)
    await Fleet(_config(fleet_size=2), gateway, sleep=sleep).run()

    # public addresses are released by the hunter itself, before teardown
    kinds = [
        ref.kind
        for ref in gateway.deleted()
        if ref.name.endswith("-1") and ref.kind is not ResourceKind.PUBLIC_IP_ADDRESS
    ]
    assert kinds == [
        ResourceKind.VIRTUAL_MACHINE,
        ResourceKind.DISK,
        ResourceKind.NETWORK_INTERFACE,
        ResourceKind.SUBNET,
        ResourceKind.VIRTUAL_NETWORK,
    ]


@pytest.mark.asyncio
async def test_budget_exhausted(gateway: FakeGateway, sleep: FakeSleep):
    fleet = Fleet(_config(fleet_size=2, max_attempts=5), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.status == "exhausted"
    assert result.exit_code == EXIT_EXHAUSTED
    assert result.winner is None
    assert all(isinstance(h, Exhausted) for h in result.hunts)
    assert sum(h.attempts for h in result.hunts) == 5
    assert fleet.budget.taken == 5
    assert not any(ref.kind is ResourceKind.PUBLIC_IP_ADDRESS for ref in gateway.resources)


@pytest.mark.asyncio
async def test_fatal_hunt_error_aborts_run(gateway: FakeGateway, sleep: FakeSleep):
    gateway.inject("create", Slot(0).public_ip_address, fatal())
    fleet = Fleet(_config(fleet_size=2), gateway, sleep=sleep)

    seen: list = []
    with use_callback(seen.append):
        result = await fleet.run()

    assert result.status == "aborted"
    assert result.exit_code == EXIT_ABORTED
    assert isinstance(result.error, FleetAborted)
    assert result.error.slot == 0
    assert isinstance(result.hunts[0], HuntFailed)
    assert isinstance(result.hunts[1], Stopped)
    assert fleet.state.aborted_by == 0
    assert [e for e in seen if isinstance(e, RunAborted)][0].slot == 0

    # no teardown unless asked for
    assert result.teardowns == ()
    assert gateway.exists(Slot(0).virtual_machine)
    # the surviving hunter never leaves an address behind
    assert not gateway.exists(Slot(1).public_ip_address)


@pytest.mark.asyncio
async def test_teardown_on_abort(gateway: FakeGateway, sleep: FakeSleep):
    gateway.inject("create", Slot(0).public_ip_address, fatal())
    fleet = Fleet(_config(fleet_size=2, teardown_on_abort=True), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.status == "aborted"
    assert sorted(r.slot for r in result.teardowns) == [0, 1]
    assert not gateway.resources


@pytest.mark.asyncio
async def test_build_failure_aborts_before_hunting(gateway: FakeGateway, sleep: FakeSleep):
    gateway.inject("create", Slot(1).virtual_machine, fatal())
    fleet = Fleet(_config(), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.status == "aborted"
    assert result.hunts == ()
    assert isinstance(result.builds[1], BuildFailed)
    assert result.error is not None and result.error.slot == 1
    assert gateway.created(ResourceKind.PUBLIC_IP_ADDRESS) == []


@pytest.mark.asyncio
async def test_losers_finish_in_flight_iteration_only(gateway: FakeGateway, sleep: FakeSleep):
    gateway.script(2, "9.9.9.9", TARGET)
    fleet = Fleet(_config(keep_losers=True), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.winner is not None
    assert result.winner.slot == 2
    assert result.winner.attempts == 2
    for outcome in result.hunts[:2]:
        assert isinstance(outcome, Stopped)
        assert outcome.attempts <= result.winner.attempts + 1
        # every losing address got a delete
        pip = Slot(outcome.slot).public_ip_address
        assert gateway.deleted(ResourceKind.PUBLIC_IP_ADDRESS).count(pip) == outcome.attempts


@pytest.mark.asyncio
async def test_unexpected_hunt_error_aborts_without_stranding_siblings(gateway: FakeGateway, sleep: FakeSleep):
    gateway.inject("create", Slot(1).public_ip_address, RuntimeError("unexpected response body"))
    fleet = Fleet(_config(), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.status == "aborted"
    assert result.exit_code == EXIT_ABORTED
    assert isinstance(result.hunts[1], HuntFailed)
    assert isinstance(result.hunts[1].error, RuntimeError)
    assert result.error is not None and result.error.slot == 1
    assert fleet.state.aborted_by == 1
    for outcome in (result.hunts[0], result.hunts[2]):
        assert isinstance(outcome, Stopped)
        assert not gateway.exists(Slot(outcome.slot).public_ip_address)


@pytest.mark.asyncio
async def test_unexpected_build_error_aborts(gateway: FakeGateway, sleep: FakeSleep):
    gateway.inject("create", Slot(0).subnet, TypeError("bad request body"))
    fleet = Fleet(_config(fleet_size=2), gateway, sleep=sleep)

    result = await fleet.run()

    assert result.status == "aborted"
    assert isinstance(result.builds[0], BuildFailed)
    assert isinstance(result.builds[0].error, TypeError)
    assert result.hunts == ()
    assert gateway.created(ResourceKind.PUBLIC_IP_ADDRESS) == []
