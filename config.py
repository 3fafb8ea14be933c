#!/usr/bin/env python3
"""
🔥🐧🔥 Thermal Profile Switcher Configuration
=========================================
Copyright (c) 2025 PNGN-Tec LLC

Configuration constants for per-app thermal profiles and touch tuning.
Imported by thermal_profiles.py and android_events.py.

Paths can be overridden per instance (see ThermalSink, PreferenceStore,
acquire_touch_control) for tests and other devices.
"""

# ============================================================================
# SYSFS NODES
# ============================================================================

THERMAL_SCONFIG = '/sys/class/thermal/thermal_message/sconfig'
TOUCH_CONTROL_DIR = '/sys/class/touch/touch_dev'

# ============================================================================
# THERMAL CODES (written verbatim to THERMAL_SCONFIG)
# ============================================================================

THERMAL_STATE_DEFAULT = '0'
THERMAL_STATE_BENCHMARK = '10'
THERMAL_STATE_BROWSER = '11'
THERMAL_STATE_CAMERA = '12'
THERMAL_STATE_DIALER = '8'
THERMAL_STATE_GAMING = '9'
THERMAL_STATE_STREAMING = '14'

# ============================================================================
# PREFERENCES
# ============================================================================

PREFERENCES_FILE = '~/.thermal_profiles.json'

THERMAL_CONTROL_KEY = 'thermal_control'     # serialized category table
THERMAL_SERVICE_KEY = 'thermal_service'     # "true" / "false"

# Legacy segment prefixes, in storage order
THERMAL_SEGMENT_PREFIXES = (
    'thermal.benchmark=',
    'thermal.browser=',
    'thermal.camera=',
    'thermal.dialer=',
    'thermal.gaming=',
    'thermal.streaming=',
)
SEGMENT_SEPARATOR = ':'
PACKAGE_TERMINATOR = ','

# ============================================================================
# TOUCH TUNING
# ============================================================================

# Index of each field in the stored "game,response,sensitivity,resistance" tuple
TOUCH_GAME_MODE = 0
TOUCH_RESPONSE = 1
TOUCH_SENSITIVITY = 2
TOUCH_RESISTANT = 3
TOUCH_TUPLE_LENGTH = 4

# Vendor touchfeature mode ids
MODE_TOUCH_GAME_MODE = 0
MODE_TOUCH_ACTIVE_MODE = 1
MODE_TOUCH_UP_THRESHOLD = 2
MODE_TOUCH_TOLERANCE = 3
MODE_TOUCH_EDGE_FILTER = 7
MODE_TOUCH_ROTATION = 8

# Node names under TOUCH_CONTROL_DIR, keyed by mode id
TOUCH_NODE_NAMES = {
    MODE_TOUCH_GAME_MODE: 'game_mode',
    MODE_TOUCH_ACTIVE_MODE: 'active_mode',
    MODE_TOUCH_UP_THRESHOLD: 'up_threshold',
    MODE_TOUCH_TOLERANCE: 'tolerance',
    MODE_TOUCH_EDGE_FILTER: 'edge_filter',
    MODE_TOUCH_ROTATION: 'rotation',
}

# ============================================================================
# EVENT SOURCE (dumpsys polling)
# ============================================================================

FOREGROUND_POLL_INTERVAL = 1.0          # seconds
SCREEN_POLL_INTERVAL = 2.0              # seconds
DUMPSYS_TIMEOUT = 2.0                   # seconds per subprocess

DUMPSYS_ACTIVITY_CMD = ['dumpsys', 'activity', 'activities']
DUMPSYS_POWER_CMD = ['dumpsys', 'power']
DUMPSYS_INPUT_CMD = ['dumpsys', 'input']

# ============================================================================
# DISPATCH / HISTORY
# ============================================================================

SWITCH_HISTORY_SIZE = 4096              # rows kept in memory
MAX_IO_FAILURE_WARNINGS = 1             # warnings per target before demoting to debug
