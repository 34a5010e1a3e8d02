"""
Startup sequence of the agent.

The orchestrator walks through a fixed series of states: load the policy,
apply admin overrides, migrate across a version change, activate rule sets,
resync permissions and register injectables. Any failure aborts the whole
sequence with a :class:`BootError`.
"""
import logging
import re
from enum import Enum
from typing import List

from .broadcast import BroadcastManager
from .config import AgentConfig
from .errors import BootError
from .host import Host
from .mode_manager import PolicyReconciler
from .models import FilteringLevel, PolicyConfig
from .rulesets import RuleLifecycleManager
from .scripting import InjectableRegistrar
from .storage import ConfigStore
from .utils.constants import (
    FEATURE_DEVELOPER,
    FLAVOR_SAFARI,
    VERSION_BASE_YEAR,
    VERSION_MONTHDAY_MULTIPLIER,
    VERSION_PATTERN,
    VERSION_YEAR_MULTIPLIER,
)
from .utils.logging import set_developer_mode

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(VERSION_PATTERN)


def int_from_version(version: str) -> int:
    """Encode a ``year.monthday.minute`` version as an ordinal.

    Only meant for comparing versions; a string of any other shape is 0.
    """
    match = _VERSION_RE.match(version or '')
    if match is None:
        return 0
    year, monthday, minute = (int(part) for part in match.groups())
    return (
        (year - VERSION_BASE_YEAR) * VERSION_YEAR_MULTIPLIER
        + monthday * VERSION_MONTHDAY_MULTIPLIER
        + minute
    )


class SessionState(Enum):
    """States of the startup sequence."""
    IDLE = "idle"
    LOADING_CONFIG = "loading_config"
    APPLYING_ADMIN_OVERRIDES = "applying_admin_overrides"
    MIGRATING_VERSION = "migrating_version"
    ACTIVATING_RULESETS = "activating_rulesets"
    RESYNCING_PERMISSIONS = "resyncing_permissions"
    REGISTERING_INJECTABLES = "registering_injectables"
    READY = "ready"
    FAILED = "failed"


class SessionOrchestrator:
    """Sequences agent startup."""

    def __init__(self,
                 store: ConfigStore,
                 host: Host,
                 rules: RuleLifecycleManager,
                 reconciler: PolicyReconciler,
                 registrar: InjectableRegistrar,
                 broadcaster: BroadcastManager,
                 config: AgentConfig):
        self.store = store
        self.host = host
        self.rules = rules
        self.reconciler = reconciler
        self.registrar = registrar
        self.broadcaster = broadcaster
        self.config = config
        self.state = SessionState.IDLE
        self.history: List[SessionState] = [SessionState.IDLE]

    def _enter(self, state: SessionState) -> None:
        logger.debug(f"Session state: {self.state.value} => {state.value}")
        self.state = state
        self.history.append(state)

    async def start(self) -> None:
        """Run the startup sequence.

        Raises:
            BootError: if any step fails
        """
        try:
            self._enter(SessionState.LOADING_CONFIG)
            wakeup = self.host.runtime.is_wakeup_run()
            config = await self.store.load(reload=True)

            def mark(current: PolicyConfig) -> None:
                current.wakeup_run = wakeup
            await self.store.update(mark)

            if not wakeup:
                await self.start_session()
            else:
                logger.info("Resumed process, skipping session startup")

            config = await self.store.load()
            set_developer_mode(config.developer_mode)
            self._enter(SessionState.READY)
        except BootError:
            self._enter(SessionState.FAILED)
            raise
        except Exception as e:
            failed_in = self.state.value
            self._enter(SessionState.FAILED)
            raise BootError(f"Startup failed while {failed_in}: {e}", failed_in) from e

    async def start_session(self) -> None:
        config = await self.store.load()
        current_version = self.config.app_version
        version_changed = config.version != current_version

        self._enter(SessionState.APPLYING_ADMIN_OVERRIDES)
        await self.host.admin.load()

        if version_changed:
            self._enter(SessionState.MIGRATING_VERSION)
            await self.migrate_version(config.version, current_version)

        self._enter(SessionState.ACTIVATING_RULESETS)
        config = await self.store.load()
        result = await self.rules.set_enabled_rule_sets(config.enabled_ruleset_ids)
        if not result.changed:
            await self.rules.decide_rule_refresh(version_changed)

        self._enter(SessionState.RESYNCING_PERMISSIONS)
        # Permissions may have been removed while the agent was not running
        await self.reconciler.sync_with_grants()

        engine = self.host.rule_engine
        if engine.supports_action_count:
            config = await self.store.load()
            await engine.set_action_count_badge(config.show_blocked_count)

        config = await self.store.load()
        if config.first_run:
            await self.elevate_first_run()

        self._enter(SessionState.REGISTERING_INJECTABLES)
        # Registrations from a previous process lifetime are never trusted
        await self.registrar.register(await self.store.load())

        await self.apply_disabled_features()

    async def migrate_version(self, old_version: str, new_version: str) -> None:
        logger.info(f"Version change: {old_version or '(none)'} => {new_version}")
        fix_threshold = int_from_version(self.config.strict_block_fix_version)

        def apply(config: PolicyConfig) -> None:
            if (
                self.config.flavor == FLAVOR_SAFARI
                and config.strict_block_mode
                and int_from_version(old_version) <= fix_threshold
            ):
                logger.info("Disabling strict block mode after Safari point release")
                config.strict_block_mode = False
            config.version = new_version

        await self.store.update(apply)
        await self.rules.patch_defaults_for_version(old_version, new_version)

    async def elevate_first_run(self) -> FilteringLevel:
        """Pick the default level for a fresh install.

        With broad access already granted the target is
        ``AgentConfig.first_run_level``, OPTIMAL unless configured otherwise,
        rather than the highest level the grants would allow. Without broad
        access it is BASIC. The first-run flag is only cleared once the level
        actually took.
        """
        if await self.reconciler.has_broad_access():
            target = self.config.first_run_level
        else:
            target = FilteringLevel.BASIC
        after = await self.reconciler.set_default_level(target)
        if after == target:
            def clear(config: PolicyConfig) -> None:
                config.first_run = False
            await self.store.update(clear)
            logger.info(f"First run: default level set to {after.label}")
        else:
            logger.warning(f"First run: default level is {after.label}, wanted {target.label}")
        return after

    async def apply_disabled_features(self) -> None:
        features = await self.host.admin.disabled_features()
        if FEATURE_DEVELOPER not in features:
            return
        config = await self.store.load()
        if config.developer_mode:
            logger.info("Developer mode disabled by administrator")
            await self.set_developer_mode(False)

    async def set_developer_mode(self, state: bool) -> PolicyConfig:
        def apply(config: PolicyConfig) -> None:
            config.developer_mode = bool(state)
        config = await self.store.update(apply)
        set_developer_mode(config.developer_mode)
        await self.broadcaster.broadcast({'developerMode': config.developer_mode})
        await self.host.rule_engine.update_user_rules(config)
        return config
