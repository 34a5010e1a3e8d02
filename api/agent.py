"""Building the agent the API serves."""
import logging
from typing import Optional

from fastapi import Request

from blocker import AgentConfig, FilteringAgent
from blocker.host import Host
from blocker.memory_host import create_memory_host
from blocker.models import RulesetDetails
from blocker.storage import ConfigStore, DatabaseConfigStore, FileConfigStore, MemoryConfigStore

from .config import Settings

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> ConfigStore:
    """Create the policy store selected by ``settings.storage_backend``."""
    backend = settings.storage_backend.lower()
    if backend == "memory":
        return MemoryConfigStore()
    if backend == "file":
        return FileConfigStore(settings.storage_path)
    if backend == "database":
        from database import create_session_factory
        return DatabaseConfigStore(create_session_factory(settings.database_url, echo=settings.debug))
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


def create_host(settings: Settings) -> Host:
    defaults = set(settings.default_rulesets)
    rulesets = [
        RulesetDetails(id=ruleset_id, name=ruleset_id, enabled=ruleset_id in defaults)
        for ruleset_id in settings.rulesets
    ]
    return create_memory_host(rulesets=rulesets, max_enabled=settings.max_enabled_rulesets)


def build_agent(settings: Settings, host: Optional[Host] = None,
                store: Optional[ConfigStore] = None) -> FilteringAgent:
    config = AgentConfig.from_dict(settings.agent_config_dict())
    logger.info(f"Building agent with {settings.storage_backend} storage")
    return FilteringAgent(host or create_host(settings), store or create_store(settings), config)


def get_agent(request: Request) -> FilteringAgent:
    """Dependency returning the agent attached to the app."""
    return request.app.state.agent
