"""
Message dispatch from UI and content contexts.

Requests fall into two trust tiers:

1. Context-scoped requests only need the sending tab/frame identity
   (style injection, toolbar icon, one-shot script injection). Failures are
   logged and never reported back.
2. Origin-gated requests read or mutate the persisted policy. The sender's
   origin must equal the agent's own origin, unless the host does not report
   an origin at all. Mutations are persisted in one step, broadcast to all
   listening contexts, and answered through the reply callback; failures are
   answered with an error payload.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Set

from .broadcast import BroadcastManager
from .config import AgentConfig
from .errors import format_error_payload
from .host import Host
from .mode_manager import PolicyReconciler
from .models import FilteringLevel, MessageSender, PolicyConfig
from .rulesets import RuleLifecycleManager
from .scripting import InjectableRegistrar
from .session import SessionOrchestrator
from .storage import ConfigStore
from .utils.constants import FEATURE_DEVELOPER, FLAVOR_SAFARI, PROCEDURAL_API_SCRIPT

logger = logging.getLogger(__name__)

Reply = Callable[[Any], None]
Handler = Callable[[Dict[str, Any]], Awaitable[Any]]

TIER1_KINDS = frozenset({'insertStyle', 'removeStyle', 'toggleIcon', 'injectProceduralApi'})


class MessageRouter:
    """Routes messages to the agent's components."""

    def __init__(self,
                 store: ConfigStore,
                 host: Host,
                 reconciler: PolicyReconciler,
                 rules: RuleLifecycleManager,
                 registrar: InjectableRegistrar,
                 orchestrator: SessionOrchestrator,
                 broadcaster: BroadcastManager,
                 config: AgentConfig):
        self.store = store
        self.host = host
        self.reconciler = reconciler
        self.rules = rules
        self.registrar = registrar
        self.orchestrator = orchestrator
        self.broadcaster = broadcaster
        self.config = config
        self._background: Set[asyncio.Task] = set()
        self._handlers: Dict[str, Handler] = {
            'applyRuleSets': self._apply_rule_sets,
            'getDefaultLevel': self._get_default_level,
            'setDefaultLevel': self._set_default_level,
            'getLevel': self._get_level,
            'setLevel': self._set_level,
            'getLevelDetails': self._get_level_details,
            'setLevelDetails': self._set_level_details,
            'requestUpgrade': self._request_upgrade,
            'excludeFromStrict': self._exclude_from_strict,
            'getOptionsPageData': self._get_options_page_data,
            'popupPanelData': self._popup_panel_data,
            'getRulesetDetails': self._get_ruleset_details,
            'setAutoReload': self._set_auto_reload,
            'setShowBlockedCount': self._set_show_blocked_count,
            'setStrictBlockMode': self._set_strict_block_mode,
            'setDeveloperMode': self._set_developer_mode,
            'getEffectiveRules': self._get_effective_rules,
            'updateUserRules': self._update_user_rules,
            'addCustomFilter': self._add_custom_filter,
            'removeCustomFilter': self._remove_custom_filter,
            'selectorsFromCustomFilters': self._selectors_from_custom_filters,
            'getTroubleshootingInfo': self._get_troubleshooting_info,
            'gotoURL': self._goto_url,
        }

    def is_trusted(self, sender: MessageSender) -> bool:
        # Some hosts do not report the sender origin
        if sender.origin is None:
            return True
        return sender.origin.rstrip('/').lower() == self.config.origin

    async def dispatch(self, request: Dict[str, Any], sender: MessageSender) -> Any:
        """Handle a message and return whatever was replied."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def reply(response: Any = None) -> None:
            if not future.done():
                future.set_result(response)

        await self.on_message(request, sender, reply)
        return await future

    async def on_message(self, request: Dict[str, Any], sender: MessageSender, reply: Reply) -> None:
        """Handle a message; ``reply`` is called exactly once."""
        replied = False

        def reply_once(response: Any = None) -> None:
            nonlocal replied
            if replied:
                return
            replied = True
            try:
                reply(response)
            except Exception as e:
                logger.error(f"Error delivering reply: {e}")

        what = request.get('what')
        try:
            if what in TIER1_KINDS:
                await self._handle_context_request(what, request, sender, reply_once)
                return

            if not self.is_trusted(sender):
                logger.warning(f"Rejected {what} from untrusted origin {sender.origin}")
                return

            handler = self._handlers.get(what)
            if handler is None:
                logger.debug(f"Unknown message: {what}")
                return
            try:
                response = await handler(request)
            except Exception as e:
                logger.error(f"Error handling {what}: {e}")
                response = format_error_payload(e)
            reply_once(response)
        finally:
            reply_once(None)

    # Tier 1

    async def _handle_context_request(self, what: str, request: Dict[str, Any],
                                      sender: MessageSender, reply: Reply) -> None:
        tab_id = sender.tab_id
        frame_id = sender.frame_id if tab_id is not None else None

        if what == 'insertStyle':
            if frame_id is None:
                return
            # Sub-frame style insertion is broken on Safari
            if frame_id != 0 and self.config.flavor == FLAVOR_SAFARI:
                return
            self._fire(self.host.scripting.insert_css(tab_id, frame_id, request.get('css', '')), what)
        elif what == 'removeStyle':
            if frame_id is None:
                return
            self._fire(self.host.scripting.remove_css(tab_id, frame_id, request.get('css', '')), what)
        elif what == 'toggleIcon':
            if tab_id is None:
                return
            self._fire(self.host.tabs.toggle_toolbar_icon(tab_id), what)
        elif what == 'injectProceduralApi':
            if tab_id is None:
                return
            try:
                await self.host.scripting.execute_script(
                    tab_id, [PROCEDURAL_API_SCRIPT], frame_id or 0
                )
            except Exception as e:
                logger.error(f"executeScript/{e}")
            reply(None)

    def _fire(self, coro: Awaitable[None], what: str) -> None:
        async def run() -> None:
            try:
                await coro
            except Exception as e:
                logger.error(f"{what}/{e}")
        task = asyncio.create_task(run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Tier 2

    async def _apply_rule_sets(self, request: Dict[str, Any]) -> Any:
        try:
            result = await self.rules.set_enabled_rule_sets(request.get('enabledRulesets') or [])
            await self.registrar.register(await self.store.load())
            return result.to_dict()
        finally:
            config = await self.store.load()
            await self.broadcaster.broadcast({'enabledRulesets': sorted(config.enabled_ruleset_ids)})

    async def _get_default_level(self, request: Dict[str, Any]) -> int:
        return int(await self.reconciler.get_default_level())

    async def _set_default_level(self, request: Dict[str, Any]) -> int:
        before = await self.reconciler.get_default_level()
        after = await self.reconciler.set_default_level(FilteringLevel.coerce(request['level']))
        await self.broadcaster.broadcast({'defaultFilteringMode': int(after)})
        if after != before:
            await self.registrar.register(await self.store.load())
        return int(after)

    async def _get_level(self, request: Dict[str, Any]) -> int:
        return int(await self.reconciler.get_level(request['hostname']))

    async def _set_level(self, request: Dict[str, Any]) -> int:
        hostname = request['hostname']
        level = FilteringLevel.coerce(request['level'])
        before = await self.reconciler.get_level(hostname)
        if level == before:
            return int(before)
        after = await self.reconciler.set_level(hostname, level)
        if after != before:
            await self.broadcaster.broadcast({'filteringMode': {'hostname': hostname, 'level': int(after)}})
            await self.registrar.register(await self.store.load())
        return int(after)

    async def _get_level_details(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return await self.reconciler.get_level_details()

    async def _set_level_details(self, request: Dict[str, Any]) -> Dict[str, Any]:
        details = await self.reconciler.set_level_details(request.get('modes') or {})
        config = await self.store.load()
        await self.broadcaster.broadcast({'defaultFilteringMode': int(config.default_level)})
        await self.registrar.register(config)
        return details

    async def _request_upgrade(self, request: Dict[str, Any]) -> None:
        await self.reconciler.request_upgrade(
            request['hostname'],
            request.get('tabId'),
            request.get('url', ''),
            FilteringLevel.coerce(request['level']),
        )

    async def _exclude_from_strict(self, request: Dict[str, Any]) -> None:
        await self.rules.exclude_from_strict(request['hostname'], bool(request.get('permanent')))

    async def _get_options_page_data(self, request: Dict[str, Any]) -> Dict[str, Any]:
        has_omnipotence, default_level, details, enabled, admin_rulesets, disabled = await asyncio.gather(
            self.reconciler.has_broad_access(),
            self.reconciler.get_default_level(),
            self.rules.get_ruleset_details(),
            self.host.rule_engine.get_enabled_rulesets(),
            self.host.admin.admin_rulesets(),
            self.host.admin.disabled_features(),
        )
        config = await self.store.load()
        return {
            'hasOmnipotence': has_omnipotence,
            'defaultFilteringMode': int(default_level),
            'enabledRulesets': sorted(enabled),
            'adminRulesets': admin_rulesets,
            'maxNumberOfEnabledRulesets': self.rules.max_enabled_rulesets,
            'rulesetDetails': [d.to_dict() for d in details],
            'autoReload': config.auto_reload,
            'showBlockedCount': config.show_blocked_count,
            'canShowBlockedCount': self.host.rule_engine.supports_action_count,
            'strictBlockMode': config.strict_block_mode,
            'firstRun': config.first_run,
            'isSideloaded': self.host.runtime.is_sideloaded(),
            'developerMode': config.developer_mode,
            'disabledFeatures': disabled,
        }

    async def _popup_panel_data(self, request: Dict[str, Any]) -> Dict[str, Any]:
        has_omnipotence, level, disabled = await asyncio.gather(
            self.reconciler.has_broad_access(),
            self.reconciler.get_level(request.get('hostname', '')),
            self.host.admin.disabled_features(),
        )
        config = await self.store.load()
        return {
            'hasOmnipotence': has_omnipotence,
            'level': int(level),
            'autoReload': config.auto_reload,
            'isSideloaded': self.host.runtime.is_sideloaded(),
            'developerMode': config.developer_mode,
            'disabledFeatures': disabled,
        }

    async def _get_ruleset_details(self, request: Dict[str, Any]) -> Any:
        return [d.to_dict() for d in await self.rules.get_ruleset_details()]

    async def _set_auto_reload(self, request: Dict[str, Any]) -> None:
        def apply(config: PolicyConfig) -> None:
            config.auto_reload = bool(request.get('state'))
        config = await self.store.update(apply)
        await self.broadcaster.broadcast({'autoReload': config.auto_reload})

    async def _set_show_blocked_count(self, request: Dict[str, Any]) -> None:
        def apply(config: PolicyConfig) -> None:
            config.show_blocked_count = bool(request.get('state'))
        config = await self.store.update(apply)
        await self.broadcaster.broadcast({'showBlockedCount': config.show_blocked_count})
        if self.host.rule_engine.supports_action_count:
            await self.host.rule_engine.set_action_count_badge(config.show_blocked_count)

    async def _set_strict_block_mode(self, request: Dict[str, Any]) -> None:
        config = await self.rules.set_strict_block_mode(bool(request.get('state')))
        await self.broadcaster.broadcast({'strictBlockMode': config.strict_block_mode})

    async def _set_developer_mode(self, request: Dict[str, Any]) -> None:
        state = bool(request.get('state'))
        if state and FEATURE_DEVELOPER in await self.host.admin.disabled_features():
            logger.info("Developer mode is disabled by administrator")
            state = False
        await self.orchestrator.set_developer_mode(state)

    async def _get_effective_rules(self, request: Dict[str, Any]) -> Any:
        return await self.rules.get_effective_rules(request.get('kind', 'dynamic'))

    async def _update_user_rules(self, request: Dict[str, Any]) -> Any:
        return await self.rules.update_user_rules()

    async def _add_custom_filter(self, request: Dict[str, Any]) -> None:
        hostname = request['hostname'].lower()
        if await self.host.rule_engine.add_custom_filter(hostname, request['selector']):
            await self.registrar.register(await self.store.load())

    async def _remove_custom_filter(self, request: Dict[str, Any]) -> None:
        hostname = request['hostname'].lower()
        if await self.host.rule_engine.remove_custom_filter(hostname, request['selector']):
            await self.registrar.register(await self.store.load())

    async def _selectors_from_custom_filters(self, request: Dict[str, Any]) -> List[str]:
        return await self.host.rule_engine.custom_filter_selectors(request['hostname'].lower())

    async def _get_troubleshooting_info(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Summary of the agent's state pasted into bug reports."""
        config = await self.store.load()
        enabled = await self.host.rule_engine.get_enabled_rulesets()
        info = {
            'version': self.config.app_version,
            'flavor': self.config.flavor,
            'filtering': {
                'default': config.default_level.label,
            },
            'rulesets': sorted(enabled),
            'strictBlockMode': config.strict_block_mode,
            'autoReload': config.auto_reload,
            'hasOmnipotence': await self.reconciler.has_broad_access(),
            'customFilters': len(await self.host.rule_engine.custom_filter_hostnames()),
            'developerMode': config.developer_mode,
        }
        site_mode = request.get('siteMode')
        if site_mode is not None:
            info['filtering']['site'] = FilteringLevel.coerce(site_mode).label
        return info

    async def _goto_url(self, request: Dict[str, Any]) -> None:
        await self.host.tabs.open(request['url'], request.get('type'))
