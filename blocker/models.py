"""
Data model for the blocker agent.

This module defines the persisted policy aggregate, the filtering levels it
is expressed in, and the small value types exchanged between components.
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from .utils.constants import POLICY_SCHEMA_VERSION
from .utils.hostnames import parent_domains


class FilteringLevel(IntEnum):
    """Ordered filtering intensity; higher levels need broader permission."""
    DISABLED = 0
    BASIC = 1
    OPTIMAL = 2
    COMPLETE = 3

    @property
    def label(self) -> str:
        return _LEVEL_LABELS[self]

    @classmethod
    def from_label(cls, label: str) -> 'FilteringLevel':
        for level, name in _LEVEL_LABELS.items():
            if name == label:
                return level
        raise ValueError(f"Unknown filtering level: {label}")

    @classmethod
    def coerce(cls, value: Any) -> 'FilteringLevel':
        """Accept a level, its integer value or its label."""
        if isinstance(value, str) and not value.isdigit():
            return cls.from_label(value)
        return cls(int(value))


_LEVEL_LABELS = {
    FilteringLevel.DISABLED: 'none',
    FilteringLevel.BASIC: 'basic',
    FilteringLevel.OPTIMAL: 'optimal',
    FilteringLevel.COMPLETE: 'complete',
}


class CrashGuardState(Enum):
    """Persisted retry flag guarding against restart loops.

    CLEAN is stored as an absent key, AWAITING_RETRY as ``False`` and
    RETRY_EXHAUSTED as ``"exhausted"``.
    """
    CLEAN = 'clean'
    AWAITING_RETRY = 'awaiting_retry'
    RETRY_EXHAUSTED = 'retry_exhausted'

    def to_stored(self) -> Any:
        if self is CrashGuardState.AWAITING_RETRY:
            return False
        if self is CrashGuardState.RETRY_EXHAUSTED:
            return 'exhausted'
        return None

    @classmethod
    def from_stored(cls, value: Any) -> 'CrashGuardState':
        if value is None:
            return cls.CLEAN
        if value is False:
            return cls.AWAITING_RETRY
        return cls.RETRY_EXHAUSTED


@dataclass
class PolicyConfig:
    """Persisted policy aggregate."""
    schema_version: int = POLICY_SCHEMA_VERSION
    version: str = ''
    enabled_ruleset_ids: Set[str] = field(default_factory=set)
    default_ruleset_ids: Set[str] = field(default_factory=set)
    default_level: FilteringLevel = FilteringLevel.BASIC
    per_host_level: Dict[str, FilteringLevel] = field(default_factory=dict)
    strict_block_mode: bool = True
    strict_block_excluded: Set[str] = field(default_factory=set)
    auto_reload: bool = True
    show_blocked_count: bool = True
    developer_mode: bool = False
    first_run: bool = False
    wakeup_run: bool = False

    def level_for(self, hostname: str) -> FilteringLevel:
        """Look up the level for a hostname, walking up its parent domains."""
        for candidate in parent_domains(hostname):
            if candidate in self.per_host_level:
                return self.per_host_level[candidate]
        return self.default_level

    def set_host_level(self, hostname: str, level: FilteringLevel) -> None:
        """Set a hostname's level; entries which add nothing are dropped."""
        hostname = hostname.lower()
        self.per_host_level.pop(hostname, None)
        if self.level_for(hostname) != level:
            self.per_host_level[hostname] = level

    def drop_redundant_levels(self) -> None:
        """Remove entries equal to the level they would inherit anyway."""
        for hostname in sorted(self.per_host_level, key=lambda h: h.count('.')):
            level = self.per_host_level[hostname]
            self.set_host_level(hostname, level)

    def copy(self) -> 'PolicyConfig':
        return PolicyConfig.from_dict(self.to_dict(), process_flags=self.process_flags())

    def process_flags(self) -> Tuple[bool, bool]:
        return self.first_run, self.wakeup_run

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted form. Process flags are not persisted."""
        return {
            'schemaVersion': self.schema_version,
            'version': self.version,
            'enabledRulesets': sorted(self.enabled_ruleset_ids),
            'defaultRulesets': sorted(self.default_ruleset_ids),
            'defaultLevel': int(self.default_level),
            'perHostLevel': {h: int(lvl) for h, lvl in sorted(self.per_host_level.items())},
            'strictBlockMode': self.strict_block_mode,
            'strictBlockExcluded': sorted(self.strict_block_excluded),
            'autoReload': self.auto_reload,
            'showBlockedCount': self.show_blocked_count,
            'developerMode': self.developer_mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  process_flags: Tuple[bool, bool] = (False, False)) -> 'PolicyConfig':
        """Create a config from its persisted form, tolerating missing or null keys."""
        defaults = cls()
        default_level = data.get('defaultLevel')
        strict_block_mode = data.get('strictBlockMode')
        return cls(
            schema_version=int(data.get('schemaVersion') or POLICY_SCHEMA_VERSION),
            version=data.get('version') or '',
            enabled_ruleset_ids=set(data.get('enabledRulesets') or []),
            default_ruleset_ids=set(data.get('defaultRulesets') or []),
            default_level=(
                defaults.default_level if default_level is None
                else FilteringLevel.coerce(default_level)
            ),
            per_host_level={
                h.lower(): FilteringLevel.coerce(lvl)
                for h, lvl in (data.get('perHostLevel') or {}).items()
            },
            strict_block_mode=(
                defaults.strict_block_mode if strict_block_mode is None
                else bool(strict_block_mode)
            ),
            strict_block_excluded=set(data.get('strictBlockExcluded') or []),
            auto_reload=bool(data.get('autoReload', defaults.auto_reload)),
            show_blocked_count=bool(data.get('showBlockedCount', defaults.show_blocked_count)),
            developer_mode=bool(data.get('developerMode', defaults.developer_mode)),
            first_run=process_flags[0],
            wakeup_run=process_flags[1],
        )


@dataclass(frozen=True)
class PendingUpgradeToken:
    """A level change waiting on a permission grant."""
    hostname: str
    tab_id: int
    url: str
    requested_level: FilteringLevel
    issued_at_level: FilteringLevel
    generation: int = 0


@dataclass(frozen=True)
class Injectable:
    """A content script bundle which should be registered with the host."""
    ruleset_id: str
    kind: str
    matches: Tuple[str, ...]
    exclude_matches: Tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return f"{self.ruleset_id}.{self.kind}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'rulesetId': self.ruleset_id,
            'kind': self.kind,
            'matches': list(self.matches),
            'excludeMatches': list(self.exclude_matches),
        }


@dataclass
class RulesetDetails:
    """Description of one bundled rule set, as reported by the rule engine."""
    id: str
    name: str = ''
    enabled: bool = False
    group: str = 'default'
    rules: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'enabled': self.enabled,
            'group': self.group,
            'rules': self.rules,
        }


@dataclass
class RulesetResult:
    """Outcome of enabling a collection of rule sets."""
    enabled_ruleset_ids: Set[str]
    rejected: Set[str] = field(default_factory=set)
    changed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabledRulesets': sorted(self.enabled_ruleset_ids),
            'rejected': sorted(self.rejected),
            'changed': self.changed,
        }


@dataclass
class MessageSender:
    """Identity of the context which sent a message."""
    tab_id: Optional[int] = None
    frame_id: Optional[int] = None
    origin: Optional[str] = None
    url: Optional[str] = None


def levels_to_details(config: PolicyConfig, all_urls_marker: str) -> Dict[str, List[str]]:
    """Group hostnames by level label, marking the default level."""
    details: Dict[str, List[str]] = {level.label: [] for level in FilteringLevel}
    for hostname, level in config.per_host_level.items():
        details[level.label].append(hostname)
    details[config.default_level.label].append(all_urls_marker)
    return {label: sorted(hosts) for label, hosts in details.items()}


def details_to_levels(details: Dict[str, Iterable[str]], all_urls_marker: str
                      ) -> Tuple[Optional[FilteringLevel], Dict[str, FilteringLevel]]:
    """Inverse of :func:`levels_to_details`."""
    default_level: Optional[FilteringLevel] = None
    per_host: Dict[str, FilteringLevel] = {}
    for label, hostnames in details.items():
        level = FilteringLevel.from_label(label)
        for hostname in hostnames:
            if hostname == all_urls_marker:
                default_level = level
            else:
                per_host[hostname.lower()] = level
    return default_level, per_host


InjectableSet = FrozenSet[Injectable]
