"""
Lifecycle of the bundled rule sets.

Handles enabling and disabling rule sets under the engine's cardinality
limit, migrating the default membership across version upgrades, and
choosing between a full dynamic-rule recompilation and a cheap session-rule
refresh.
"""
import logging
from typing import Any, Dict, Iterable, List, Set

from .errors import LimitExceededError
from .host import RuleEngine
from .models import PolicyConfig, RulesetDetails, RulesetResult
from .storage import ConfigStore

logger = logging.getLogger(__name__)

REFRESH_DYNAMIC = "dynamic"
REFRESH_SESSION = "session"

EFFECTIVE_RULE_KINDS = ("dynamic", "session", "user")


class RuleLifecycleManager:
    """Enables rule sets and keeps engine rules in sync with the policy."""

    def __init__(self, store: ConfigStore, engine: RuleEngine):
        """Initialize the rule set manager.

        Args:
            store: The policy store
            engine: The host rule engine
        """
        self.store = store
        self.engine = engine

    @property
    def max_enabled_rulesets(self) -> int:
        return self.engine.max_enabled_rulesets

    async def get_ruleset_details(self) -> List[RulesetDetails]:
        return await self.engine.get_ruleset_details()

    async def set_enabled_rule_sets(self, ids: Iterable[str]) -> RulesetResult:
        """Enable exactly ``ids``.

        Raises:
            LimitExceededError: more ids than the engine allows; nothing is changed
        """
        requested = set(ids)
        limit = self.engine.max_enabled_rulesets
        if len(requested) > limit:
            raise LimitExceededError(len(requested), limit)

        known = {details.id for details in await self.engine.get_ruleset_details()}
        effective = requested & known
        rejected = requested - known
        if rejected:
            logger.warning(f"Unknown rule sets ignored: {sorted(rejected)}")

        before = await self.engine.get_enabled_rulesets()
        to_enable = effective - before
        to_disable = before - effective
        changed = bool(to_enable or to_disable)
        if changed:
            await self.engine.update_enabled_rulesets(to_enable, to_disable)
            logger.info(f"Rule sets enabled: {sorted(to_enable)}, disabled: {sorted(to_disable)}")
            # The engine may still refuse some of them
            actual = await self.engine.get_enabled_rulesets()
            refused = effective - actual
            if refused:
                logger.warning(f"Rule engine refused rule sets: {sorted(refused)}")
                rejected |= refused
                effective = effective & actual

        def commit(config: PolicyConfig) -> None:
            config.enabled_ruleset_ids = set(effective)
        config = await self.store.update(commit)

        if changed:
            await self.engine.update_dynamic_rules(config)
        return RulesetResult(enabled_ruleset_ids=set(effective), rejected=rejected, changed=changed)

    async def decide_rule_refresh(self, version_changed: bool) -> str:
        """Recompile dynamic rules after a version change, else refresh session rules."""
        config = await self.store.load()
        if version_changed:
            logger.info("Version changed, recompiling dynamic rules")
            await self.engine.update_dynamic_rules(config)
            return REFRESH_DYNAMIC
        await self.engine.update_session_rules(config)
        return REFRESH_SESSION

    async def patch_defaults_for_version(self, old_version: str, new_version: str) -> Set[str]:
        """Carry the enabled rule sets across a change of default membership.

        Newly default rule sets are enabled, retired defaults and rule sets
        the engine no longer knows are removed. The result is persisted.
        """
        details = await self.engine.get_ruleset_details()
        known = {d.id for d in details}
        new_defaults = {d.id for d in details if d.enabled}
        limit = self.engine.max_enabled_rulesets

        def patch(config: PolicyConfig) -> None:
            old_defaults = config.default_ruleset_ids
            to_add = new_defaults - old_defaults
            to_remove = old_defaults - new_defaults
            kept = [i for i in sorted(config.enabled_ruleset_ids) if i in known and i not in to_remove]
            added = [i for i in sorted(to_add) if i not in kept]
            patched = (kept + added)[:limit]
            if len(kept) + len(added) > limit:
                logger.warning(f"Rule sets trimmed to engine limit of {limit}")
            if set(patched) != config.enabled_ruleset_ids:
                logger.info(
                    f"Patched rule sets for {old_version or '(none)'} => {new_version}: "
                    f"added {sorted(set(patched) - config.enabled_ruleset_ids)}, "
                    f"removed {sorted(config.enabled_ruleset_ids - set(patched))}"
                )
            config.enabled_ruleset_ids = set(patched)
            config.default_ruleset_ids = set(new_defaults)

        config = await self.store.update(patch)
        return set(config.enabled_ruleset_ids)

    async def set_strict_block_mode(self, state: bool) -> PolicyConfig:
        def apply(config: PolicyConfig) -> None:
            config.strict_block_mode = bool(state)
        config = await self.store.update(apply)
        await self.engine.update_session_rules(config)
        return config

    async def exclude_from_strict(self, hostname: str, permanent: bool) -> None:
        """Let a hostname through strict blocking, for now or for good."""
        hostname = hostname.lower()
        if permanent:
            def apply(config: PolicyConfig) -> None:
                config.strict_block_excluded.add(hostname)
            await self.store.update(apply)
        await self.engine.exclude_from_strict_block(hostname, permanent)

    async def update_user_rules(self) -> Any:
        return await self.engine.update_user_rules(await self.store.load())

    async def get_effective_rules(self, kind: str) -> List[Dict[str, Any]]:
        if kind not in EFFECTIVE_RULE_KINDS:
            raise ValueError(f"Unknown rule kind: {kind}")
        return await self.engine.get_effective_rules(kind)
