"""Common test fixtures and utilities."""
from typing import Any, Dict, List

import pytest

from blocker import AgentConfig, FilteringAgent, MemoryConfigStore, MessageSender
from blocker.host import Host
from blocker.memory_host import create_memory_host
from blocker.models import RulesetDetails
from blocker.utils.constants import POLICY_CONFIG_KEY

ORIGIN = "chrome-extension://blocker"
APP_VERSION = "2025.1010.1200"
TAB_URL = "https://example.com/article"
BROAD = "<all_urls>"


class CountingConfigStore(MemoryConfigStore):
    """Memory store recording every write."""

    def __init__(self, initial: Dict[str, Any] = None):
        super().__init__(initial)
        self.writes: List[str] = []

    async def write(self, key: str, value: Any) -> None:
        self.writes.append(key)
        await super().write(key, value)

    @property
    def policy_writes(self) -> int:
        return self.writes.count(POLICY_CONFIG_KEY)


def make_rulesets() -> List[RulesetDetails]:
    return [
        RulesetDetails(id="default", name="Default", enabled=True, rules=1000),
        RulesetDetails(id="annoyances", name="Annoyances", rules=300),
        RulesetDetails(id="privacy", name="Privacy", rules=200),
        RulesetDetails(id="regions", name="Regions", rules=100, group="regions"),
    ]


def make_agent(host: Host, store: MemoryConfigStore, **config: Any) -> FilteringAgent:
    values = {"origin": ORIGIN, "app_version": APP_VERSION, "reload_delay": 0}
    values.update(config)
    return FilteringAgent(host, store, AgentConfig(**values))


@pytest.fixture
def host() -> Host:
    """In-memory host without any permission granted."""
    return create_memory_host(
        rulesets=make_rulesets(),
        max_enabled=3,
        tabs={7: TAB_URL},
    )


@pytest.fixture
def store() -> CountingConfigStore:
    return CountingConfigStore()


@pytest.fixture
def agent(host: Host, store: CountingConfigStore) -> FilteringAgent:
    return make_agent(host, store)


@pytest.fixture
def sender() -> MessageSender:
    """Sender trusted by the agent."""
    return MessageSender(tab_id=None, frame_id=None, origin=ORIGIN)


@pytest.fixture
def content_sender() -> MessageSender:
    return MessageSender(tab_id=7, frame_id=0, origin="https://example.com", url=TAB_URL)
