"""
Per-site filtering levels and their reconciliation with permission grants.

Levels at or above OPTIMAL need host permission for the site they apply
to. This module keeps the persisted levels within what the permission host
allows, and carries level upgrades which had to wait for the user to grant
a permission.
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from .config import AgentConfig
from .host import PermissionHost, RuleEngine, TabsHost
from .models import (
    FilteringLevel,
    PendingUpgradeToken,
    PolicyConfig,
    details_to_levels,
    levels_to_details,
)
from .scripting import InjectableRegistrar
from .storage import ConfigStore
from .utils.constants import ALL_URLS
from .utils.hostnames import has_broad_access, hostnames_from_matches, is_covered

logger = logging.getLogger(__name__)


class PendingUpgradeSlot:
    """Holds at most one pending upgrade.

    ``issue`` and ``take`` never suspend, so a handler which takes the token
    is the only one that will ever see it.
    """

    def __init__(self):
        self._token: Optional[PendingUpgradeToken] = None
        self._generation = 0

    @property
    def token(self) -> Optional[PendingUpgradeToken]:
        return self._token

    @property
    def generation(self) -> int:
        return self._generation

    def issue(self, hostname: str, tab_id: int, url: str,
              requested_level: FilteringLevel,
              issued_at_level: FilteringLevel) -> PendingUpgradeToken:
        self._generation += 1
        if self._token is not None:
            logger.debug(f"Pending upgrade for {self._token.hostname} superseded")
        self._token = PendingUpgradeToken(
            hostname=hostname.lower(),
            tab_id=tab_id,
            url=url,
            requested_level=requested_level,
            issued_at_level=issued_at_level,
            generation=self._generation,
        )
        return self._token

    def take(self) -> Optional[PendingUpgradeToken]:
        token, self._token = self._token, None
        return token


class PolicyReconciler:
    """Derives and mutates filtering levels against permission grants.

    Every path which reads the grants and then writes a level holds
    ``self._lock`` across both steps, so a write never lands on top of a
    grant change it did not see.
    """

    def __init__(self,
                 store: ConfigStore,
                 permissions: PermissionHost,
                 engine: RuleEngine,
                 tabs: TabsHost,
                 registrar: InjectableRegistrar,
                 config: Optional[AgentConfig] = None):
        self.store = store
        self.permissions = permissions
        self.engine = engine
        self.tabs = tabs
        self.registrar = registrar
        self.config = config or AgentConfig()
        self.pending = PendingUpgradeSlot()
        self._lock = asyncio.Lock()
        self._reload_tasks: Set[asyncio.Task] = set()

    async def granted_hostnames(self) -> Set[str]:
        return set(hostnames_from_matches(await self.permissions.granted_origins()))

    async def has_broad_access(self) -> bool:
        return has_broad_access(await self.granted_hostnames())

    async def get_level(self, hostname: str) -> FilteringLevel:
        config = await self.store.load()
        return config.level_for(hostname)

    async def get_default_level(self) -> FilteringLevel:
        config = await self.store.load()
        return config.default_level

    async def set_level(self, hostname: str, level: FilteringLevel) -> FilteringLevel:
        """Set a site's level, clamped to what the grants allow.

        Returns the level now in effect for the site.
        """
        hostname = hostname.lower()
        level = FilteringLevel.coerce(level)
        async with self._lock:
            granted = await self.granted_hostnames()
            if level >= FilteringLevel.OPTIMAL and not is_covered(hostname, granted):
                logger.info(f"No permission for {hostname}, using basic instead of {level.label}")
                level = FilteringLevel.BASIC

            def apply(config: PolicyConfig) -> None:
                config.set_host_level(hostname, level)
            config = await self.store.update(apply)
        return config.level_for(hostname)

    async def set_default_level(self, level: FilteringLevel) -> FilteringLevel:
        level = FilteringLevel.coerce(level)
        async with self._lock:
            if level >= FilteringLevel.OPTIMAL and not await self.has_broad_access():
                logger.info(f"No broad permission, using basic instead of {level.label}")
                level = FilteringLevel.BASIC

            def apply(config: PolicyConfig) -> None:
                config.default_level = level
                config.drop_redundant_levels()
            config = await self.store.update(apply)
        return config.default_level

    async def get_level_details(self) -> Dict[str, List[str]]:
        config = await self.store.load()
        return levels_to_details(config, ALL_URLS)

    async def set_level_details(self, details: Dict[str, Iterable[str]]) -> Dict[str, List[str]]:
        """Replace every level override at once, then resync with grants."""
        default_level, per_host = details_to_levels(details, ALL_URLS)

        def apply(config: PolicyConfig) -> None:
            if default_level is not None:
                config.default_level = default_level
            config.per_host_level = dict(per_host)
            config.drop_redundant_levels()
        async with self._lock:
            await self.store.update(apply)
            await self._sync_with_grants()
        return await self.get_level_details()

    async def sync_with_grants(self) -> bool:
        """Downgrade every level the current grants no longer allow.

        Returns True if the policy changed.
        """
        async with self._lock:
            return await self._sync_with_grants()

    async def _sync_with_grants(self) -> bool:
        granted = await self.granted_hostnames()
        broad = ALL_URLS in granted
        changes: List[str] = []

        def apply(config: PolicyConfig) -> None:
            if not broad and config.default_level >= FilteringLevel.OPTIMAL:
                changes.append(f"default: {config.default_level.label} => basic")
                config.default_level = FilteringLevel.BASIC
            for hostname, level in list(config.per_host_level.items()):
                if level >= FilteringLevel.OPTIMAL and not is_covered(hostname, granted):
                    changes.append(f"{hostname}: {level.label} => basic")
                    config.per_host_level[hostname] = FilteringLevel.BASIC
            if changes:
                config.drop_redundant_levels()

        await self.store.update(apply)
        if changes:
            logger.info(f"Levels downgraded after permission change: {', '.join(changes)}")
        return bool(changes)

    async def on_grant_revoked(self) -> bool:
        changed = await self.sync_with_grants()
        if not changed:
            return False
        await self.registrar.register(await self.store.load())
        return True

    async def request_upgrade(self, hostname: str, tab_id: int, url: str,
                              requested_level: FilteringLevel) -> None:
        """Remember a level change which will apply once permission is granted.

        The caller is responsible for asking the user for the permission.
        """
        requested_level = FilteringLevel.coerce(requested_level)
        issued_at_level = await self.get_level(hostname)
        self.pending.issue(hostname, tab_id, url, requested_level, issued_at_level)
        logger.debug(f"Upgrade of {hostname} to {requested_level.label} pending")

    async def on_grant_added(self, origins: Iterable[str]) -> bool:
        """Handle newly granted permissions.

        Returns True if the policy or registrations changed.
        """
        token = self.pending.take()
        if token is None:
            changed = await self.sync_with_grants()
            if not changed:
                return False
            config = await self.store.load()
            await asyncio.gather(
                self.engine.update_session_rules(config),
                self.registrar.register(config),
            )
            return True

        if not is_covered(token.hostname, set(hostnames_from_matches(origins or []))):
            return False
        if not await self._apply_upgrade(token):
            return False
        config = await self.store.load()
        await self.registrar.register(config)
        if config.auto_reload:
            self._schedule_reload(token.tab_id, token.url)
        return True

    async def _apply_upgrade(self, token: PendingUpgradeToken) -> bool:
        applied = False

        def apply(config: PolicyConfig) -> None:
            nonlocal applied
            if config.default_level >= FilteringLevel.OPTIMAL:
                return
            current = config.level_for(token.hostname)
            if current != token.issued_at_level:
                logger.debug(
                    f"Stale upgrade for {token.hostname}: level is {current.label}, "
                    f"was {token.issued_at_level.label}"
                )
                return
            config.set_host_level(token.hostname, token.requested_level)
            applied = True

        async with self._lock:
            if token.requested_level >= FilteringLevel.OPTIMAL:
                if not is_covered(token.hostname, await self.granted_hostnames()):
                    return False
            await self.store.update(apply)
        return applied

    def _schedule_reload(self, tab_id: int, url: str) -> None:
        task = asyncio.create_task(self._reload_tab(tab_id, url))
        self._reload_tasks.add(task)
        task.add_done_callback(self._reload_tasks.discard)

    async def _reload_tab(self, tab_id: int, url: str) -> None:
        await asyncio.sleep(self.config.reload_delay)
        try:
            await self.tabs.update(tab_id, url)
        except Exception as e:
            logger.debug(f"Reload of tab {tab_id} failed: {e}")

    @property
    def pending_reloads(self) -> int:
        return len(self._reload_tasks)
