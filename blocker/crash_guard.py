"""
Bounded self-restart after a failed boot.

Transitions of the persisted flag:

    boot ok                                   any            -> CLEAN
    cold boot fails                           CLEAN          -> AWAITING_RETRY, restart once
    cold boot fails   AWAITING_RETRY / RETRY_EXHAUSTED       -> CLEAN, give up
    wake-up boot fails                        any            -> unchanged, log only
"""
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from .host import RuntimeHost
from .models import CrashGuardState
from .storage import ConfigStore

logger = logging.getLogger(__name__)


class BootOutcome(Enum):
    """Result of a guarded boot attempt."""
    READY = "ready"
    RESTART_REQUESTED = "restart_requested"
    FAILED = "failed"
    WAKE_FAILED = "wake_failed"


class CrashLoopGuard:
    """Wraps the top-level boot attempt."""

    def __init__(self, store: ConfigStore, runtime: RuntimeHost):
        self.store = store
        self.runtime = runtime
        self.last_error: Optional[Exception] = None

    async def run(self, boot: Callable[[], Awaitable[None]], wakeup: bool = False) -> BootOutcome:
        try:
            await boot()
        except Exception as e:
            self.last_error = e
            logger.error(f"Boot failed: {e}", exc_info=True)
            return await self._on_failure(wakeup)

        try:
            await self.store.write_crash_guard(CrashGuardState.CLEAN)
        except Exception as e:
            logger.error(f"Could not clear crash guard: {e}")
        return BootOutcome.READY

    async def _on_failure(self, wakeup: bool) -> BootOutcome:
        if wakeup:
            # Resumed processes recover on the next real event
            return BootOutcome.WAKE_FAILED

        try:
            state = await self.store.read_crash_guard()
            if state is not CrashGuardState.CLEAN:
                await self.store.write_crash_guard(CrashGuardState.CLEAN)
                logger.error("Boot failed again after an automatic restart, giving up")
                return BootOutcome.FAILED
            await self.store.write_crash_guard(CrashGuardState.AWAITING_RETRY)
        except Exception as e:
            logger.error(f"Crash guard unavailable, not restarting: {e}")
            return BootOutcome.FAILED

        logger.warning("Restarting once after boot failure")
        try:
            await self.runtime.reload()
        except Exception as e:
            logger.error(f"Restart request failed: {e}")
            return BootOutcome.FAILED
        return BootOutcome.RESTART_REQUESTED
