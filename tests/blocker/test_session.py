"""Tests for the startup sequence."""
from unittest.mock import AsyncMock

import pytest

from blocker.errors import BootError
from blocker.memory_host import create_memory_host
from blocker.models import FilteringLevel
from blocker.session import SessionState, int_from_version
from blocker.utils.constants import POLICY_CONFIG_KEY
from blocker.utils.logging import is_developer_mode, set_developer_mode
from tests.conftest import APP_VERSION, BROAD, CountingConfigStore, make_agent, make_rulesets


def persisted(**values):
    data = {
        "version": APP_VERSION,
        "enabledRulesets": ["default"],
        "defaultRulesets": ["default"],
    }
    data.update(values)
    return {POLICY_CONFIG_KEY: data}


def test_int_from_version():
    assert int_from_version("2024.102.0") > int_from_version("2024.101.0")
    assert int_from_version("2024.101.1") > int_from_version("2024.101.0")
    assert int_from_version("2025.101.0") > int_from_version("2024.1231.2359")
    assert int_from_version("2022.0.5") == 5
    assert int_from_version("abc") == 0
    assert int_from_version("") == 0
    assert int_from_version("2024.101") == 0


@pytest.mark.asyncio
async def test_fresh_install_without_broad_access(host, store):
    agent = make_agent(host, store)
    agent.registrar.register = AsyncMock(wraps=agent.registrar.register)

    await agent.orchestrator.start()

    config = await store.load()
    assert agent.orchestrator.state is SessionState.READY
    assert config.default_level is FilteringLevel.BASIC
    assert config.first_run is False
    assert config.version == APP_VERSION
    assert config.enabled_ruleset_ids == {"default"}
    agent.registrar.register.assert_awaited_once()
    assert agent.orchestrator.history == [
        SessionState.IDLE,
        SessionState.LOADING_CONFIG,
        SessionState.APPLYING_ADMIN_OVERRIDES,
        SessionState.MIGRATING_VERSION,
        SessionState.ACTIVATING_RULESETS,
        SessionState.RESYNCING_PERMISSIONS,
        SessionState.REGISTERING_INJECTABLES,
        SessionState.READY,
    ]


@pytest.mark.asyncio
async def test_fresh_install_with_broad_access(store):
    host = create_memory_host(rulesets=make_rulesets(), origins=[BROAD])
    agent = make_agent(host, store)

    await agent.orchestrator.start()

    config = await store.load()
    assert config.default_level is FilteringLevel.OPTIMAL
    assert config.first_run is False
    assert host.scripting.register_calls == 1
    assert set(host.scripting.registered) == {"default.specific"}


@pytest.mark.asyncio
async def test_fresh_install_uses_configured_first_run_level(store):
    host = create_memory_host(rulesets=make_rulesets(), origins=[BROAD])
    agent = make_agent(host, store, first_run_level=FilteringLevel.COMPLETE)

    await agent.orchestrator.start()

    config = await store.load()
    assert config.default_level is FilteringLevel.COMPLETE
    assert config.first_run is False


@pytest.mark.asyncio
async def test_first_run_kept_when_elevation_does_not_take(store):
    host = create_memory_host(rulesets=make_rulesets(), origins=[BROAD])
    agent = make_agent(host, store)
    agent.reconciler.set_default_level = AsyncMock(return_value=FilteringLevel.BASIC)

    await agent.orchestrator.start()
    assert (await store.load()).first_run is True


@pytest.mark.asyncio
async def test_unchanged_version_refreshes_session_rules(host):
    store = CountingConfigStore(persisted())
    host.rule_engine.enabled = {"default"}
    agent = make_agent(host, store)

    await agent.orchestrator.start()

    assert host.rule_engine.session_updates == 1
    assert host.rule_engine.dynamic_updates == 0
    assert SessionState.MIGRATING_VERSION not in agent.orchestrator.history
    assert store.policy_writes == 0


@pytest.mark.asyncio
async def test_version_change_recompiles_dynamic_rules(host):
    store = CountingConfigStore(persisted(version="2025.101.0"))
    host.rule_engine.enabled = {"default"}
    agent = make_agent(host, store)

    await agent.orchestrator.start()

    assert host.rule_engine.dynamic_updates == 1
    assert host.rule_engine.session_updates == 0
    assert (await store.load()).version == APP_VERSION


@pytest.mark.parametrize("flavor,previous,strict", [
    ("safari", "2025.804.2359", False),
    ("safari", "2025.101.0", False),
    ("safari", "", False),
    ("safari", "1.2", False),
    ("safari", "2025.805.0", True),
    ("chromium", "2025.101.0", True),
])
@pytest.mark.asyncio
async def test_safari_strict_block_correction(host, flavor, previous, strict):
    store = CountingConfigStore(persisted(version=previous, strictBlockMode=True))
    agent = make_agent(host, store, flavor=flavor)

    await agent.orchestrator.start()
    assert (await store.load()).strict_block_mode is strict


@pytest.mark.asyncio
async def test_wakeup_run_skips_session(store):
    host = create_memory_host(rulesets=make_rulesets(), wakeup=True)
    agent = make_agent(host, store)

    await agent.orchestrator.start()

    assert agent.orchestrator.history == [
        SessionState.IDLE,
        SessionState.LOADING_CONFIG,
        SessionState.READY,
    ]
    assert host.admin.loaded == 0
    assert (await store.load()).wakeup_run is True


@pytest.mark.asyncio
async def test_admin_disables_developer_mode():
    store = CountingConfigStore(persisted(developerMode=True))
    host = create_memory_host(rulesets=make_rulesets(), admin={"disabledFeatures": ["develop"]})
    agent = make_agent(host, store)
    queue = agent.broadcaster.subscribe()

    await agent.orchestrator.start()

    assert (await store.load()).developer_mode is False
    assert queue.get_nowait() == {"developerMode": False}
    assert host.rule_engine.user_rule_updates == 1
    assert not is_developer_mode()


@pytest.mark.asyncio
async def test_developer_mode_switches_logging(agent):
    try:
        await agent.orchestrator.set_developer_mode(True)
        assert is_developer_mode()
    finally:
        set_developer_mode(False)


@pytest.mark.asyncio
async def test_badge_applied_when_supported(store):
    host = create_memory_host(rulesets=make_rulesets(), action_count=True)
    agent = make_agent(host, store)

    await agent.orchestrator.start()
    assert host.rule_engine.badge_enabled is True


@pytest.mark.asyncio
async def test_failure_aborts_with_boot_error(host, store):
    host.admin.load = AsyncMock(side_effect=RuntimeError("policy unreadable"))
    agent = make_agent(host, store)

    with pytest.raises(BootError) as exc_info:
        await agent.orchestrator.start()

    assert exc_info.value.state == SessionState.APPLYING_ADMIN_OVERRIDES.value
    assert agent.orchestrator.state is SessionState.FAILED
    assert isinstance(exc_info.value.__cause__, RuntimeError)
