"""Constants shared across the blocker agent."""
from typing import Dict, List

# Storage keys
POLICY_CONFIG_KEY = 'rulesetConfig'
CRASH_GUARD_KEY = 'goodStart'

# Current layout of the persisted policy blob
POLICY_SCHEMA_VERSION = 1

# Version ordinal: year.monthday.minute
VERSION_PATTERN = r'^(\d+)\.(\d+)\.(\d+)$'
VERSION_BASE_YEAR = 2022
VERSION_MINUTE_SPAN = 2400          # minutes component never reaches this
VERSION_MONTHDAY_SPAN = 1232        # monthday component never reaches this
VERSION_YEAR_MULTIPLIER = VERSION_MONTHDAY_SPAN * VERSION_MINUTE_SPAN
VERSION_MONTHDAY_MULTIPLIER = VERSION_MINUTE_SPAN

# Safari builds up to this version shipped a broken strict-block page
STRICT_BLOCK_FIX_VERSION = '2025.804.2359'

# Platform flavors
FLAVOR_CHROMIUM = 'chromium'
FLAVOR_SAFARI = 'safari'

# Hostname marker for broad host access
ALL_URLS = 'all-urls'

# Delay before reloading a tab after a permission-gated upgrade
RELOAD_DELAY = 0.437

# Admin features which can be switched off by policy
FEATURE_DEVELOPER = 'develop'

# Keyboard commands and the script bundles they inject
COMMAND_SCRIPTS: Dict[str, List[str]] = {
    'enter-zapper-mode': [
        '/js/scripting/tool-overlay.js',
        '/js/scripting/zapper.js',
    ],
    'enter-picker-mode': [
        '/js/scripting/css-procedural-api.js',
        '/js/scripting/tool-overlay.js',
        '/js/scripting/picker.js',
    ],
}

PROCEDURAL_API_SCRIPT = '/js/scripting/css-procedural-api.js'
