#!/usr/bin/env python3
"""
🐧 Thermal Profile Switcher Type Definitions
===========================================
Copyright (c) 2025 PNGN-Tec LLC

Shared type system for the profile switcher. Platform-agnostic enums and
dataclasses used by the profile store, the foreground watcher and the
event sources.
"""

from dataclasses import dataclass
from typing import Union
from enum import Enum, IntEnum

from config import (
    THERMAL_STATE_DEFAULT,
    THERMAL_STATE_BENCHMARK,
    THERMAL_STATE_BROWSER,
    THERMAL_STATE_CAMERA,
    THERMAL_STATE_DIALER,
    THERMAL_STATE_GAMING,
    THERMAL_STATE_STREAMING,
    TOUCH_GAME_MODE,
    TOUCH_RESPONSE,
    TOUCH_SENSITIVITY,
    TOUCH_RESISTANT,
    TOUCH_TUPLE_LENGTH,
    MODE_TOUCH_GAME_MODE,
    MODE_TOUCH_ACTIVE_MODE,
    MODE_TOUCH_UP_THRESHOLD,
    MODE_TOUCH_TOLERANCE,
    MODE_TOUCH_EDGE_FILTER,
    MODE_TOUCH_ROTATION,
)

# ============================================================================
# ENUMS
# ============================================================================

class ThermalCategory(Enum):
    """Workload class driving the device thermal policy"""
    DEFAULT = THERMAL_STATE_DEFAULT
    BENCHMARK = THERMAL_STATE_BENCHMARK
    BROWSER = THERMAL_STATE_BROWSER
    CAMERA = THERMAL_STATE_CAMERA
    DIALER = THERMAL_STATE_DIALER
    GAMING = THERMAL_STATE_GAMING
    STREAMING = THERMAL_STATE_STREAMING

    @property
    def code(self) -> str:
        """Value written to the thermal control node"""
        return self.value

    @property
    def uses_touch_tuning(self) -> bool:
        """Check if category applies per-app touch tuning"""
        return self in (ThermalCategory.BENCHMARK, ThermalCategory.GAMING)

    @classmethod
    def stored(cls):
        """Categories with a segment in the legacy table, in storage order"""
        return (cls.BENCHMARK, cls.BROWSER, cls.CAMERA,
                cls.DIALER, cls.GAMING, cls.STREAMING)


class TouchParam(IntEnum):
    """Vendor touch-feature parameter ids"""
    GAME_MODE = MODE_TOUCH_GAME_MODE
    ACTIVE_MODE = MODE_TOUCH_ACTIVE_MODE
    UP_THRESHOLD = MODE_TOUCH_UP_THRESHOLD
    TOLERANCE = MODE_TOUCH_TOLERANCE
    EDGE_FILTER = MODE_TOUCH_EDGE_FILTER
    ROTATION = MODE_TOUCH_ROTATION


# Order matters: matches the vendor HAL reset sequence
TOUCH_RESET_ORDER = (
    TouchParam.GAME_MODE,
    TouchParam.ACTIVE_MODE,
    TouchParam.UP_THRESHOLD,
    TouchParam.TOLERANCE,
    TouchParam.EDGE_FILTER,
    TouchParam.ROTATION,
)


class DisplayRotation(IntEnum):
    """Display orientation in degrees"""
    ROTATION_0 = 0
    ROTATION_90 = 90
    ROTATION_180 = 180
    ROTATION_270 = 270

    @property
    def touch_code(self) -> int:
        """Rotation code understood by the touch controller (0-3)"""
        return self.value // 90

    @classmethod
    def from_surface(cls, surface_rotation: int) -> 'DisplayRotation':
        """Map a Surface.ROTATION_* index (0-3) to a rotation"""
        return cls(int(surface_rotation) % 4 * 90)

# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class TouchTuning:
    """
    Per-package touch tuning tuple.

    Attributes:
        game_mode: Game mode switch forwarded as-is
        response_threshold: Touch-up threshold (response)
        sensitivity: Touch tolerance (sensitivity)
        edge_resistance: Edge filter strength (resistance)
    """
    game_mode: int
    response_threshold: int
    sensitivity: int
    edge_resistance: int

    @property
    def active_mode(self) -> bool:
        """Active mode is on only when response, sensitivity and resistance are all set"""
        return (self.response_threshold != 0
                and self.sensitivity != 0
                and self.edge_resistance != 0)

    @classmethod
    def parse(cls, raw: str) -> 'TouchTuning':
        """
        Parse the stored "game,response,sensitivity,resistance" form.

        Raises:
            ValueError: wrong field count or non-integer field
        """
        fields = raw.split(',')
        if len(fields) < TOUCH_TUPLE_LENGTH:
            raise ValueError(f"Expected {TOUCH_TUPLE_LENGTH} touch fields, got {len(fields)}")
        return cls(
            game_mode=int(fields[TOUCH_GAME_MODE]),
            response_threshold=int(fields[TOUCH_RESPONSE]),
            sensitivity=int(fields[TOUCH_SENSITIVITY]),
            edge_resistance=int(fields[TOUCH_RESISTANT]),
        )

    def serialize(self) -> str:
        fields = [0] * TOUCH_TUPLE_LENGTH
        fields[TOUCH_GAME_MODE] = self.game_mode
        fields[TOUCH_RESPONSE] = self.response_threshold
        fields[TOUCH_SENSITIVITY] = self.sensitivity
        fields[TOUCH_RESISTANT] = self.edge_resistance
        return ','.join(str(v) for v in fields)


@dataclass
class ObserverState:
    """In-memory watcher state, reset on start and on screen broadcasts"""
    last_package: str = ''
    touch_applied: bool = False
    rotation: DisplayRotation = DisplayRotation.ROTATION_0

    def reset(self):
        self.last_package = ''
        self.touch_applied = False

# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True)
class ForegroundChanged:
    """Top activity now belongs to package"""
    package: str


@dataclass(frozen=True)
class ScreenStateChanged:
    """Screen turned on or off"""
    screen_on: bool


@dataclass(frozen=True)
class DisplayRotationChanged:
    """Display orientation changed"""
    rotation: DisplayRotation


WatcherEvent = Union[ForegroundChanged, ScreenStateChanged, DisplayRotationChanged]

# ============================================================================
# EXPORT ALL PUBLIC TYPES
# ============================================================================

__all__ = [
    # Enums
    'ThermalCategory',
    'TouchParam',
    'TOUCH_RESET_ORDER',
    'DisplayRotation',

    # Data structures
    'TouchTuning',
    'ObserverState',

    # Events
    'ForegroundChanged',
    'ScreenStateChanged',
    'DisplayRotationChanged',
    'WatcherEvent',
]
