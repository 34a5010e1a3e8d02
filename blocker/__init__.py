"""Lifecycle orchestration for a content-filtering agent."""
from .config import AgentConfig
from .core import BootBarrier, FilteringAgent
from .crash_guard import BootOutcome, CrashLoopGuard
from .errors import AgentError, BootError, LimitExceededError, StorageError
from .models import FilteringLevel, MessageSender, PolicyConfig
from .storage import ConfigStore, DatabaseConfigStore, FileConfigStore, MemoryConfigStore

__all__ = [
    'AgentConfig',
    'AgentError',
    'BootBarrier',
    'BootError',
    'BootOutcome',
    'ConfigStore',
    'CrashLoopGuard',
    'DatabaseConfigStore',
    'FileConfigStore',
    'FilteringAgent',
    'FilteringLevel',
    'LimitExceededError',
    'MemoryConfigStore',
    'MessageSender',
    'PolicyConfig',
    'StorageError',
]
