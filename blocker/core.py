"""
Top-level agent wiring.

``FilteringAgent`` builds every component around one store and one host,
boots through the crash-loop guard and exposes the inbound event handlers.
Handlers wait on the boot barrier before doing anything.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

from .broadcast import BroadcastManager
from .config import AgentConfig
from .crash_guard import BootOutcome, CrashLoopGuard
from .host import Host
from .messaging import MessageRouter, Reply
from .mode_manager import PolicyReconciler
from .models import MessageSender
from .rulesets import RuleLifecycleManager
from .scripting import InjectableRegistrar
from .session import SessionOrchestrator
from .storage import ConfigStore
from .utils.constants import COMMAND_SCRIPTS

logger = logging.getLogger(__name__)


class BootBarrier:
    """Single-use gate released once boot has settled.

    The outcome is cached, so waiting after release returns immediately.
    """

    def __init__(self):
        self._future: Optional[asyncio.Future] = None
        self._outcome: Optional[BootOutcome] = None

    def _get_future(self) -> asyncio.Future:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def resolved(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> Optional[BootOutcome]:
        return self._outcome

    def resolve(self, outcome: BootOutcome) -> None:
        if self._outcome is not None:
            logger.warning(f"Boot barrier already resolved with {self._outcome.value}")
            return
        self._outcome = outcome
        future = self._get_future()
        if not future.done():
            future.set_result(outcome)

    async def wait(self) -> BootOutcome:
        if self._outcome is not None:
            return self._outcome
        return await asyncio.shield(self._get_future())


class FilteringAgent:
    """The content-filtering agent."""

    def __init__(self,
                 host: Host,
                 store: ConfigStore,
                 config: Optional[AgentConfig] = None,
                 broadcaster: Optional[BroadcastManager] = None):
        self.host = host
        self.store = store
        self.config = config or AgentConfig()
        self.broadcaster = broadcaster or BroadcastManager()

        self.registrar = InjectableRegistrar(host.scripting, host.rule_engine)
        self.rules = RuleLifecycleManager(store, host.rule_engine)
        self.reconciler = PolicyReconciler(
            store, host.permissions, host.rule_engine, host.tabs, self.registrar, self.config
        )
        self.orchestrator = SessionOrchestrator(
            store, host, self.rules, self.reconciler, self.registrar, self.broadcaster, self.config
        )
        self.guard = CrashLoopGuard(store, host.runtime)
        self.router = MessageRouter(
            store, host, self.reconciler, self.rules, self.registrar,
            self.orchestrator, self.broadcaster, self.config
        )
        self.barrier = BootBarrier()
        self._boot_task: Optional[asyncio.Future] = None

    async def boot(self) -> BootOutcome:
        """Run the startup sequence once and release the boot barrier.

        Overlapping callers share the same run.
        """
        if self.barrier.resolved:
            return self.barrier.outcome
        if self._boot_task is None:
            self._boot_task = asyncio.ensure_future(self._boot())
        return await asyncio.shield(self._boot_task)

    async def _boot(self) -> BootOutcome:
        wakeup = self.host.runtime.is_wakeup_run()
        logger.info(f"Booting agent {self.config.app_version} ({self.config.flavor})")
        outcome = await self.guard.run(self.orchestrator.start, wakeup=wakeup)
        if outcome is BootOutcome.READY:
            logger.info("Agent ready")
        else:
            logger.error(f"Agent boot ended with {outcome.value}")
        self.barrier.resolve(outcome)
        return outcome

    async def on_message(self, request: Dict[str, Any], sender: MessageSender, reply: Reply) -> None:
        await self.barrier.wait()
        await self.router.on_message(request, sender, reply)

    async def dispatch(self, request: Dict[str, Any], sender: MessageSender) -> Any:
        await self.barrier.wait()
        return await self.router.dispatch(request, sender)

    async def on_permissions_added(self, origins: Iterable[str]) -> bool:
        await self.barrier.wait()
        origins = list(origins or [])
        logger.debug(f"Permissions added: {origins}")
        return await self.reconciler.on_grant_added(origins)

    async def on_permissions_removed(self, origins: Optional[Iterable[str]] = None) -> bool:
        await self.barrier.wait()
        logger.debug(f"Permissions removed: {list(origins or [])}")
        return await self.reconciler.on_grant_revoked()

    async def on_command(self, command: str, tab_id: Optional[int]) -> bool:
        """Inject the script bundle bound to a keyboard command.

        Returns False if the command is unknown or there is no tab.
        """
        await self.barrier.wait()
        files = COMMAND_SCRIPTS.get(command)
        if files is None:
            logger.debug(f"Unknown command: {command}")
            return False
        if tab_id is None:
            return False
        try:
            await self.host.scripting.execute_script(tab_id, list(files))
        except Exception as e:
            logger.error(f"Command {command} failed: {e}")
        return True

    @property
    def state(self) -> str:
        return self.orchestrator.state.value
