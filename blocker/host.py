"""
Interfaces to the host environment.

The agent never implements permissions, rule evaluation, script injection or
admin policy itself; it drives them through these interfaces. Every call may
suspend and may raise.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from .models import Injectable, PolicyConfig, RulesetDetails


class PermissionHost(ABC):
    """User-granted host permissions."""

    @abstractmethod
    async def granted_origins(self) -> List[str]:
        """Return the origin match patterns currently granted."""
        pass


class RuleEngine(ABC):
    """The host's declarative rule-evaluation engine."""

    @property
    @abstractmethod
    def max_enabled_rulesets(self) -> int:
        """Maximum number of bundled rule sets enabled at once."""
        pass

    @property
    def supports_action_count(self) -> bool:
        """Whether the engine can show the blocked count on the toolbar."""
        return False

    @abstractmethod
    async def get_ruleset_details(self) -> List[RulesetDetails]:
        """Return every bundled rule set known to the engine."""
        pass

    @abstractmethod
    async def get_enabled_rulesets(self) -> Set[str]:
        pass

    @abstractmethod
    async def update_enabled_rulesets(self, enable: Set[str], disable: Set[str]) -> None:
        pass

    @abstractmethod
    async def update_dynamic_rules(self, config: PolicyConfig) -> None:
        """Recompile custom and user filters into dynamic rules."""
        pass

    @abstractmethod
    async def update_session_rules(self, config: PolicyConfig) -> None:
        """Regenerate rules which do not survive a process restart."""
        pass

    @abstractmethod
    async def update_user_rules(self, config: PolicyConfig) -> Any:
        pass

    @abstractmethod
    async def get_effective_rules(self, kind: str) -> List[Dict[str, Any]]:
        """Return the rules of one kind: ``dynamic``, ``session`` or ``user``."""
        pass

    @abstractmethod
    async def exclude_from_strict_block(self, hostname: str, permanent: bool) -> None:
        pass

    @abstractmethod
    async def add_custom_filter(self, hostname: str, selector: str) -> bool:
        """Store a cosmetic filter for a site; True if it was not there yet."""
        pass

    @abstractmethod
    async def remove_custom_filter(self, hostname: str, selector: str) -> bool:
        pass

    @abstractmethod
    async def custom_filter_selectors(self, hostname: str) -> List[str]:
        """Selectors stored for a site and its parent domains."""
        pass

    @abstractmethod
    async def custom_filter_hostnames(self) -> Set[str]:
        pass

    async def set_action_count_badge(self, enabled: bool) -> None:
        pass


class ScriptingHost(ABC):
    """Content script registration and one-shot injection."""

    @abstractmethod
    async def insert_css(self, tab_id: int, frame_id: int, css: str) -> None:
        pass

    @abstractmethod
    async def remove_css(self, tab_id: int, frame_id: int, css: str) -> None:
        pass

    @abstractmethod
    async def execute_script(self, tab_id: int, files: List[str],
                             frame_id: Optional[int] = None) -> None:
        pass

    @abstractmethod
    async def get_registered(self) -> List[Injectable]:
        pass

    @abstractmethod
    async def register(self, injectables: Iterable[Injectable]) -> None:
        pass

    @abstractmethod
    async def unregister(self, ids: Iterable[str]) -> None:
        pass


class TabsHost(ABC):
    """Tabs and toolbar."""

    @abstractmethod
    async def update(self, tab_id: int, url: str) -> None:
        """Navigate an existing tab; raises if the tab is gone."""
        pass

    @abstractmethod
    async def toggle_toolbar_icon(self, tab_id: int) -> None:
        pass

    @abstractmethod
    async def open(self, url: str, kind: Optional[str] = None) -> None:
        """Open a page in a new tab, or a popup window when ``kind`` asks for one."""
        pass


class AdminPolicy(ABC):
    """Administrator-managed settings."""

    @abstractmethod
    async def load(self) -> None:
        """Load admin settings so they override user settings."""
        pass

    @abstractmethod
    async def read(self, key: str) -> Any:
        pass

    async def disabled_features(self) -> List[str]:
        items = await self.read('disabledFeatures')
        return list(items) if isinstance(items, (list, tuple, set)) else []

    async def admin_rulesets(self) -> List[str]:
        items = await self.read('rulesets')
        return list(items) if isinstance(items, (list, tuple, set)) else []


class RuntimeHost(ABC):
    """Process lifetime as owned by the host."""

    @abstractmethod
    def is_wakeup_run(self) -> bool:
        """True when the process was resumed rather than cold-booted."""
        pass

    @abstractmethod
    async def reload(self) -> None:
        """Request a hard restart of the whole agent."""
        pass

    def is_sideloaded(self) -> bool:
        return False


@dataclass
class Host:
    """All host interfaces the agent drives."""
    permissions: PermissionHost
    rule_engine: RuleEngine
    scripting: ScriptingHost
    tabs: TabsHost
    admin: AdminPolicy
    runtime: RuntimeHost
