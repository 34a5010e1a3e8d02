"""End-to-end tests of the agent."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from blocker import BootBarrier, BootOutcome, FilteringLevel
from blocker.models import CrashGuardState
from blocker.utils.constants import COMMAND_SCRIPTS, CRASH_GUARD_KEY
from tests.conftest import TAB_URL, make_agent

EXAMPLE = "*://*.example.com/*"


@pytest.mark.asyncio
async def test_barrier_caches_resolution():
    barrier = BootBarrier()
    waiter = asyncio.ensure_future(barrier.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    barrier.resolve(BootOutcome.READY)
    assert await waiter is BootOutcome.READY
    assert await barrier.wait() is BootOutcome.READY

    barrier.resolve(BootOutcome.FAILED)
    assert barrier.outcome is BootOutcome.READY


@pytest.mark.asyncio
async def test_handlers_wait_for_boot(agent, sender):
    pending = asyncio.ensure_future(agent.dispatch({"what": "getDefaultLevel"}, sender))
    await asyncio.sleep(0)
    assert not pending.done()

    assert await agent.boot() is BootOutcome.READY
    assert await pending == 1


@pytest.mark.asyncio
async def test_boot_runs_once(agent, host):
    assert await agent.boot() is BootOutcome.READY
    assert await agent.boot() is BootOutcome.READY
    assert host.admin.loaded == 1


@pytest.mark.asyncio
async def test_fresh_install_end_to_end(agent, host, store):
    assert await agent.boot() is BootOutcome.READY

    config = await store.load()
    assert config.default_level is FilteringLevel.BASIC
    assert config.first_run is False
    assert config.enabled_ruleset_ids == {"default"}
    assert host.rule_engine.enabled == {"default"}
    assert CRASH_GUARD_KEY not in store.values
    assert agent.state == "ready"


@pytest.mark.asyncio
async def test_upgrade_end_to_end(agent, host, sender):
    await agent.boot()
    await agent.dispatch({
        "what": "requestUpgrade",
        "hostname": "example.com",
        "tabId": 7,
        "url": TAB_URL,
        "level": FilteringLevel.COMPLETE,
    }, sender)

    host.permissions.grant(EXAMPLE)
    assert await agent.on_permissions_added([EXAMPLE]) is True
    assert await agent.dispatch({"what": "getLevel", "hostname": "example.com"}, sender) == 3
    assert set(host.scripting.registered) == {"default.specific", "default.generic"}

    await asyncio.sleep(0.01)
    assert host.tabs.navigations == [{"tab": 7, "url": TAB_URL}]

    # A second grant event does not apply the upgrade again
    assert await agent.on_permissions_added([EXAMPLE]) is False


@pytest.mark.asyncio
async def test_revoke_end_to_end(agent, host, sender):
    await agent.boot()
    host.permissions.grant(EXAMPLE)
    await agent.dispatch({"what": "setLevel", "hostname": "example.com", "level": 3}, sender)

    host.permissions.revoke(EXAMPLE)
    assert await agent.on_permissions_removed([EXAMPLE]) is True
    assert await agent.dispatch({"what": "getLevel", "hostname": "example.com"}, sender) == 1
    assert host.scripting.registered == {}


@pytest.mark.asyncio
async def test_failed_boot_requests_single_restart(host, store):
    host.admin.load = AsyncMock(side_effect=RuntimeError("admin storage unavailable"))

    first = make_agent(host, store)
    assert await first.boot() is BootOutcome.RESTART_REQUESTED
    assert await store.read_crash_guard() is CrashGuardState.AWAITING_RETRY

    second = make_agent(host, store)
    assert await second.boot() is BootOutcome.FAILED
    assert host.runtime.reload_count == 1
    assert second.barrier.outcome is BootOutcome.FAILED


@pytest.mark.asyncio
async def test_commands(agent, host):
    await agent.boot()
    assert await agent.on_command("enter-picker-mode", 7) is True
    assert host.scripting.executed == [
        {"tab": 7, "files": COMMAND_SCRIPTS["enter-picker-mode"], "frame": None}
    ]
    assert await agent.on_command("enter-zapper-mode", None) is False
    assert await agent.on_command("self-destruct", 7) is False


@pytest.mark.asyncio
async def test_command_failure_is_best_effort(agent, host):
    await agent.boot()
    host.scripting.execute_script = AsyncMock(side_effect=RuntimeError("tab closed"))
    assert await agent.on_command("enter-zapper-mode", 7) is True


@pytest.mark.asyncio
async def test_overlapping_boots_share_one_run(host, store):
    async def slow_failing_load():
        await asyncio.sleep(0.01)
        raise RuntimeError("admin storage unavailable")
    host.admin.load = AsyncMock(side_effect=slow_failing_load)
    agent = make_agent(host, store)

    outcomes = await asyncio.gather(agent.boot(), agent.boot())

    assert outcomes == [BootOutcome.RESTART_REQUESTED, BootOutcome.RESTART_REQUESTED]
    assert host.admin.load.await_count == 1
    assert host.runtime.reload_count == 1
    assert await store.read_crash_guard() is CrashGuardState.AWAITING_RETRY
