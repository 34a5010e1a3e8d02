"""Agent configuration."""
from dataclasses import dataclass

from .models import FilteringLevel
from .utils.constants import FLAVOR_CHROMIUM, RELOAD_DELAY, STRICT_BLOCK_FIX_VERSION


@dataclass
class AgentConfig:
    """Agent configuration."""
    # Host identity
    flavor: str = FLAVOR_CHROMIUM
    origin: str = "chrome-extension://blocker"
    app_version: str = "2025.1010.1200"

    # Permission-gated upgrades
    reload_delay: float = RELOAD_DELAY  # Seconds before reloading the originating tab

    # Level applied on the very first run when broad access is already granted
    first_run_level: FilteringLevel = FilteringLevel.OPTIMAL

    # Last version affected by the strict-block defect on Safari
    strict_block_fix_version: str = STRICT_BLOCK_FIX_VERSION

    def __post_init__(self):
        """Normalize values coming from loosely typed sources."""
        self.flavor = self.flavor.lower()
        self.origin = self.origin.rstrip('/').lower()
        self.first_run_level = FilteringLevel.coerce(self.first_run_level)
        if self.reload_delay < 0:
            raise ValueError("Reload delay must be non-negative")
        if self.first_run_level == FilteringLevel.DISABLED:
            raise ValueError("First run level cannot be 'none'")

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'AgentConfig':
        """Create config from dictionary, handling both snake_case and camelCase."""
        converted_dict = {}
        for key, value in config_dict.items():
            # Convert camelCase to snake_case (e.g., reloadDelay -> reload_delay)
            snake_key = ''.join(['_' + c.lower() if c.isupper() else c.lower() for c in key]).lstrip('_')
            converted_dict[snake_key] = value

        # Only include keys that match our fields
        filtered_dict = {
            k: v for k, v in converted_dict.items()
            if k in cls.__dataclass_fields__
        }
        return cls(**filtered_dict)
