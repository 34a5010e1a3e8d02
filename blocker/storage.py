"""
Durable storage for the agent's policy blob and crash-guard flag.

All policy mutation goes through :meth:`ConfigStore.update`, a single
read-modify-write entry point serialized with an asyncio lock. Three
backends are provided:

1. ``MemoryConfigStore`` keeps values in a dictionary
2. ``FileConfigStore`` keeps values in a JSON or YAML file
3. ``DatabaseConfigStore`` keeps values in a key/value table via SQLAlchemy
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml
from sqlalchemy import text

from .errors import StorageError
from .models import CrashGuardState, PolicyConfig
from .utils.constants import CRASH_GUARD_KEY, POLICY_CONFIG_KEY, POLICY_SCHEMA_VERSION

logger = logging.getLogger(__name__)

Mutator = Callable[[PolicyConfig], None]


class ConfigStore(ABC):
    """Abstract base class for policy storage."""

    def __init__(self):
        self._config: Optional[PolicyConfig] = None
        self._lock = asyncio.Lock()

    @abstractmethod
    async def read(self, key: str) -> Any:
        """Read a raw value, None if absent."""
        pass

    @abstractmethod
    async def write(self, key: str, value: Any) -> None:
        """Write a raw value."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a raw value."""
        pass

    async def load(self, reload: bool = False) -> PolicyConfig:
        """Return a snapshot of the current policy.

        The first load (or ``reload=True``) reads the persisted blob; when
        nothing was persisted the defaults are used and ``first_run`` is set.
        """
        if self._config is None or reload:
            async with self._lock:
                self._config = await self._read_config()
        return self._config.copy()

    async def update(self, mutator: Mutator) -> PolicyConfig:
        """Apply ``mutator`` to the policy and persist it if anything changed.

        Returns a snapshot of the resulting policy.
        """
        async with self._lock:
            if self._config is None:
                self._config = await self._read_config()
            candidate = self._config.copy()
            mutator(candidate)
            if candidate.to_dict() != self._config.to_dict():
                await self._write_config(candidate)
            self._config = candidate
            return candidate.copy()

    async def save(self, config: PolicyConfig) -> PolicyConfig:
        """Replace the whole policy."""
        def replace(current: PolicyConfig) -> None:
            for name in current.__dataclass_fields__:
                setattr(current, name, getattr(config, name))
        return await self.update(replace)

    async def read_crash_guard(self) -> CrashGuardState:
        return CrashGuardState.from_stored(await self.read(CRASH_GUARD_KEY))

    async def write_crash_guard(self, state: CrashGuardState) -> None:
        if state is CrashGuardState.CLEAN:
            await self.remove(CRASH_GUARD_KEY)
        else:
            await self.write(CRASH_GUARD_KEY, state.to_stored())

    async def _read_config(self) -> PolicyConfig:
        try:
            data = await self.read(POLICY_CONFIG_KEY)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Could not read policy: {e}") from e
        if not data:
            logger.info("No persisted policy found, using defaults")
            return PolicyConfig(first_run=True)
        try:
            config = PolicyConfig.from_dict(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed policy: {e}") from e
        if config.schema_version > POLICY_SCHEMA_VERSION:
            logger.warning(f"Policy schema {config.schema_version} is newer than supported")
        config.schema_version = POLICY_SCHEMA_VERSION
        return config

    async def _write_config(self, config: PolicyConfig) -> None:
        try:
            await self.write(POLICY_CONFIG_KEY, config.to_dict())
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Could not write policy: {e}") from e
        logger.debug(f"Policy saved: {config.to_dict()}")


class MemoryConfigStore(ConfigStore):
    """Implementation of policy storage kept in memory."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.values: Dict[str, Any] = dict(initial or {})

    async def read(self, key: str) -> Any:
        return json.loads(json.dumps(self.values.get(key)))

    async def write(self, key: str, value: Any) -> None:
        self.values[key] = json.loads(json.dumps(value))

    async def remove(self, key: str) -> None:
        self.values.pop(key, None)


class FileConfigStore(ConfigStore):
    """Implementation of policy storage using a file."""

    def __init__(self, path: Union[str, Path] = "blocker_storage.json"):
        """Initialize file-based storage.

        Args:
            path: Path to the storage file; ``.yaml``/``.yml`` selects YAML
        """
        super().__init__()
        self.path = Path(path)

    @property
    def _is_yaml(self) -> bool:
        return self.path.suffix in ('.yaml', '.yml')

    def _load_all(self) -> Dict[str, Any]:
        try:
            with open(self.path, 'r') as f:
                if self._is_yaml:
                    return yaml.safe_load(f) or {}
                return json.load(f) or {}
        except FileNotFoundError:
            return {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise StorageError(f"Error loading storage file {self.path}: {e}") from e

    def _save_all(self, values: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
            with open(tmp_path, 'w') as f:
                if self._is_yaml:
                    yaml.safe_dump(values, f, default_flow_style=False)
                else:
                    json.dump(values, f, indent=2)
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Error saving storage file {self.path}: {e}") from e

    async def read(self, key: str) -> Any:
        return self._load_all().get(key)

    async def write(self, key: str, value: Any) -> None:
        values = self._load_all()
        values[key] = value
        self._save_all(values)

    async def remove(self, key: str) -> None:
        values = self._load_all()
        if key in values:
            del values[key]
            self._save_all(values)


class DatabaseConfigStore(ConfigStore):
    """Implementation of policy storage using the database."""

    def __init__(self, session_factory, table: str = "agent_storage"):
        """Initialize database storage.

        Args:
            session_factory: Callable returning an ``AsyncSession`` context manager
            table: Name of the key/value table
        """
        super().__init__()
        self._session_factory = session_factory
        self._table = table
        self._table_ready = False

    async def _ensure_table(self, db) -> None:
        if self._table_ready:
            return
        await db.execute(text(
            f"CREATE TABLE IF NOT EXISTS {self._table} ("
            "key VARCHAR(64) PRIMARY KEY, value TEXT NOT NULL)"
        ))
        self._table_ready = True

    async def read(self, key: str) -> Any:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await self._ensure_table(db)
                    result = await db.execute(
                        text(f"SELECT value FROM {self._table} WHERE key = :key"),
                        {"key": key}
                    )
                    row = result.fetchone()
            return json.loads(row[0]) if row else None
        except Exception as e:
            logger.error(f"Error reading {key} from database: {e}")
            raise StorageError(f"Error reading {key}: {e}") from e

    async def write(self, key: str, value: Any) -> None:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await self._ensure_table(db)
                    # Use upsert pattern
                    await db.execute(
                        text(f"""
                            INSERT INTO {self._table} (key, value)
                            VALUES (:key, :value)
                            ON CONFLICT (key) DO UPDATE SET value = :value
                        """),
                        {"key": key, "value": json.dumps(value)}
                    )
        except Exception as e:
            logger.error(f"Error writing {key} to database: {e}")
            raise StorageError(f"Error writing {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await self._ensure_table(db)
                    await db.execute(
                        text(f"DELETE FROM {self._table} WHERE key = :key"),
                        {"key": key}
                    )
        except Exception as e:
            logger.error(f"Error removing {key} from database: {e}")
            raise StorageError(f"Error removing {key}: {e}") from e
