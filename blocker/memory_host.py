"""
In-process implementation of the host interfaces.

Used by the development server and by tests. Every call is recorded so
callers can inspect what the agent asked the host to do.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from .host import (
    AdminPolicy,
    Host,
    PermissionHost,
    RuleEngine,
    RuntimeHost,
    ScriptingHost,
    TabsHost,
)
from .models import Injectable, PolicyConfig, RulesetDetails
from .utils.hostnames import parent_domains

logger = logging.getLogger(__name__)


class MemoryPermissionHost(PermissionHost):
    def __init__(self, origins: Optional[Iterable[str]] = None):
        self.origins: List[str] = list(origins or [])

    async def granted_origins(self) -> List[str]:
        return list(self.origins)

    def grant(self, *origins: str) -> None:
        for origin in origins:
            if origin not in self.origins:
                self.origins.append(origin)

    def revoke(self, *origins: str) -> None:
        self.origins = [o for o in self.origins if o not in origins]


class MemoryRuleEngine(RuleEngine):
    """Rule engine keeping rule sets and rules in dictionaries."""

    def __init__(self,
                 rulesets: Optional[Iterable[RulesetDetails]] = None,
                 max_enabled: int = 50,
                 action_count: bool = False):
        self.rulesets: Dict[str, RulesetDetails] = {r.id: r for r in rulesets or []}
        self.enabled: Set[str] = set()
        self.refused: Set[str] = set()
        self.max_enabled = max_enabled
        self.action_count = action_count
        self.badge_enabled: Optional[bool] = None
        self.rules: Dict[str, List[Dict[str, Any]]] = {'dynamic': [], 'session': [], 'user': []}
        self.dynamic_updates = 0
        self.session_updates = 0
        self.user_rule_updates = 0
        self.strict_exclusions: List[Dict[str, Any]] = []
        self.custom_filters: Dict[str, List[str]] = {}

    @property
    def max_enabled_rulesets(self) -> int:
        return self.max_enabled

    @property
    def supports_action_count(self) -> bool:
        return self.action_count

    async def get_ruleset_details(self) -> List[RulesetDetails]:
        return [self.rulesets[i] for i in sorted(self.rulesets)]

    async def get_enabled_rulesets(self) -> Set[str]:
        return set(self.enabled)

    async def update_enabled_rulesets(self, enable: Set[str], disable: Set[str]) -> None:
        self.enabled -= set(disable)
        self.enabled |= {i for i in enable if i in self.rulesets and i not in self.refused}

    async def update_dynamic_rules(self, config: PolicyConfig) -> None:
        self.dynamic_updates += 1
        self.rules['dynamic'] = []
        self.rules['session'] = self._session_rules(config)

    async def update_session_rules(self, config: PolicyConfig) -> None:
        self.session_updates += 1
        self.rules['session'] = self._session_rules(config)

    async def update_user_rules(self, config: PolicyConfig) -> Dict[str, Any]:
        self.user_rule_updates += 1
        return {'added': 0, 'removed': 0, 'developerMode': config.developer_mode}

    async def get_effective_rules(self, kind: str) -> List[Dict[str, Any]]:
        return list(self.rules.get(kind, []))

    async def exclude_from_strict_block(self, hostname: str, permanent: bool) -> None:
        self.strict_exclusions.append({'hostname': hostname, 'permanent': permanent})

    async def add_custom_filter(self, hostname: str, selector: str) -> bool:
        selectors = self.custom_filters.setdefault(hostname, [])
        if selector in selectors:
            return False
        selectors.append(selector)
        return True

    async def remove_custom_filter(self, hostname: str, selector: str) -> bool:
        selectors = self.custom_filters.get(hostname, [])
        if selector not in selectors:
            return False
        selectors.remove(selector)
        if not selectors:
            del self.custom_filters[hostname]
        return True

    async def custom_filter_selectors(self, hostname: str) -> List[str]:
        selectors: List[str] = []
        for parent in parent_domains(hostname):
            selectors.extend(self.custom_filters.get(parent, []))
        return selectors

    async def custom_filter_hostnames(self) -> Set[str]:
        return set(self.custom_filters)

    async def set_action_count_badge(self, enabled: bool) -> None:
        self.badge_enabled = enabled

    def _session_rules(self, config: PolicyConfig) -> List[Dict[str, Any]]:
        if not config.strict_block_mode or not config.strict_block_excluded:
            return []
        return [{
            'id': 1,
            'action': {'type': 'allow'},
            'condition': {'requestDomains': sorted(config.strict_block_excluded)},
        }]


class MemoryScriptingHost(ScriptingHost):
    def __init__(self):
        self.registered: Dict[str, Injectable] = {}
        self.register_calls = 0
        self.unregister_calls = 0
        self.styles: List[Dict[str, Any]] = []
        self.executed: List[Dict[str, Any]] = []

    async def insert_css(self, tab_id: int, frame_id: int, css: str) -> None:
        self.styles.append({'op': 'insert', 'tab': tab_id, 'frame': frame_id, 'css': css})

    async def remove_css(self, tab_id: int, frame_id: int, css: str) -> None:
        self.styles.append({'op': 'remove', 'tab': tab_id, 'frame': frame_id, 'css': css})

    async def execute_script(self, tab_id: int, files: List[str],
                             frame_id: Optional[int] = None) -> None:
        self.executed.append({'tab': tab_id, 'files': list(files), 'frame': frame_id})

    async def get_registered(self) -> List[Injectable]:
        return list(self.registered.values())

    async def register(self, injectables: Iterable[Injectable]) -> None:
        self.register_calls += 1
        for injectable in injectables:
            self.registered[injectable.id] = injectable

    async def unregister(self, ids: Iterable[str]) -> None:
        self.unregister_calls += 1
        for id_ in ids:
            self.registered.pop(id_, None)


class MemoryTabsHost(TabsHost):
    def __init__(self, tabs: Optional[Dict[int, str]] = None):
        self.tabs: Dict[int, str] = dict(tabs or {})
        self.navigations: List[Dict[str, Any]] = []
        self.toggled: List[int] = []
        self.opened: List[Dict[str, Any]] = []

    async def update(self, tab_id: int, url: str) -> None:
        if tab_id not in self.tabs:
            raise KeyError(f"No tab with id: {tab_id}")
        self.tabs[tab_id] = url
        self.navigations.append({'tab': tab_id, 'url': url})

    async def toggle_toolbar_icon(self, tab_id: int) -> None:
        self.toggled.append(tab_id)

    async def open(self, url: str, kind: Optional[str] = None) -> None:
        self.opened.append({'url': url, 'kind': kind})


class MemoryAdminPolicy(AdminPolicy):
    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self.values: Dict[str, Any] = dict(values or {})
        self.loaded = 0

    async def load(self) -> None:
        self.loaded += 1

    async def read(self, key: str) -> Any:
        return self.values.get(key)


class MemoryRuntimeHost(RuntimeHost):
    def __init__(self, wakeup: bool = False, sideloaded: bool = False):
        self.wakeup = wakeup
        self.sideloaded = sideloaded
        self.reload_count = 0

    def is_wakeup_run(self) -> bool:
        return self.wakeup

    async def reload(self) -> None:
        self.reload_count += 1
        logger.info("Restart requested")

    def is_sideloaded(self) -> bool:
        return self.sideloaded


def create_memory_host(rulesets: Optional[Iterable[RulesetDetails]] = None,
                       origins: Optional[Iterable[str]] = None,
                       max_enabled: int = 50,
                       tabs: Optional[Dict[int, str]] = None,
                       admin: Optional[Dict[str, Any]] = None,
                       wakeup: bool = False,
                       action_count: bool = False) -> Host:
    """Build a complete in-memory host."""
    return Host(
        permissions=MemoryPermissionHost(origins),
        rule_engine=MemoryRuleEngine(rulesets, max_enabled, action_count),
        scripting=MemoryScriptingHost(),
        tabs=MemoryTabsHost(tabs),
        admin=MemoryAdminPolicy(admin),
        runtime=MemoryRuntimeHost(wakeup),
    )
