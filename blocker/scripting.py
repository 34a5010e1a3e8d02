"""
Registration of content scripts and stylesheets.

The set of injectables is derived from the enabled rule sets, the filtering
levels and the sites which carry custom filters. Registration compares that
set against what the host reports as registered, so registering an
already-correct set changes nothing on the host.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .host import RuleEngine, ScriptingHost
from .models import FilteringLevel, Injectable, InjectableSet, PolicyConfig
from .utils.hostnames import match_patterns_for

logger = logging.getLogger(__name__)

# Injectable kind -> minimum level at which it runs
INJECTABLE_KINDS: Dict[str, FilteringLevel] = {
    'specific': FilteringLevel.OPTIMAL,
    'generic': FilteringLevel.COMPLETE,
}

CUSTOM_FILTERS_ID = 'custom'


def _matches_for(config: PolicyConfig, minimum: FilteringLevel
                 ) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    if config.default_level >= minimum:
        excluded = [h for h, lvl in config.per_host_level.items() if lvl < minimum]
        return ('<all_urls>',), tuple(match_patterns_for(excluded))
    included = [h for h, lvl in config.per_host_level.items() if lvl >= minimum]
    return tuple(match_patterns_for(included)), ()


def compute_injectables(config: PolicyConfig,
                        custom_hostnames: Iterable[str] = ()) -> InjectableSet:
    """Derive the injectables which should be active for ``config``."""
    injectables = set()
    for kind, minimum in INJECTABLE_KINDS.items():
        matches, exclude_matches = _matches_for(config, minimum)
        if not matches:
            continue
        for ruleset_id in sorted(config.enabled_ruleset_ids):
            injectables.add(Injectable(
                ruleset_id=ruleset_id,
                kind=kind,
                matches=matches,
                exclude_matches=exclude_matches,
            ))

    # Custom filters run on their sites unless filtering is off there
    custom = [h for h in custom_hostnames if config.level_for(h) > FilteringLevel.DISABLED]
    if custom:
        injectables.add(Injectable(
            ruleset_id=CUSTOM_FILTERS_ID,
            kind='filters',
            matches=tuple(match_patterns_for(custom)),
        ))
    return frozenset(injectables)


class InjectableRegistrar:
    """Keeps the host's registered injectables in line with the policy."""

    def __init__(self, scripting: ScriptingHost, engine: Optional[RuleEngine] = None):
        self.scripting = scripting
        self.engine = engine

    async def register(self, config: PolicyConfig) -> bool:
        """Bring host registrations in line with ``config``.

        Returns True if the host had to be changed.
        """
        custom_hostnames = await self.engine.custom_filter_hostnames() if self.engine else set()
        desired = {i.id: i for i in compute_injectables(config, custom_hostnames)}
        current = {i.id: i for i in await self.scripting.get_registered()}

        stale: List[str] = [
            id_ for id_, injectable in current.items()
            if desired.get(id_) != injectable
        ]
        missing: List[Injectable] = [
            injectable for id_, injectable in desired.items()
            if current.get(id_) != injectable
        ]
        if not stale and not missing:
            logger.debug("Injectables already up to date")
            return False

        if stale:
            await self.scripting.unregister(stale)
        if missing:
            await self.scripting.register(missing)
        logger.info(f"Injectables updated: {len(missing)} registered, {len(stale)} removed")
        return True
