#!/usr/bin/env python3
"""
🔥🐧🔥 Thermal Profile Switcher
============================
Copyright (c) 2025 PNGN-Tec LLC

Per-app thermal profiles and touch tuning for Android devices.

Watches the foreground application and writes the matching thermal-control
code to the kernel sconfig node. Games and benchmarks additionally get their
per-app touchscreen tuning (sensitivity, response, edge filter) pushed to the
vendor touch controller.

ARCHITECTURE:
- PreferenceStore: JSON key-value file, atomic writes
- ProfileStore: package -> ThermalCategory table (legacy ':'-segment format)
  plus per-package TouchTuning tuples
- ThermalSink: best-effort single-line write to sconfig
- TouchControl: vendor touch surface (sysfs nodes, or no-op when unsupported)
- ForegroundWatcher: serialized state machine fed by one asyncio queue
- SwitchHistory: bounded numpy log of applied transitions
- ThermalProfileService: lifecycle (enable flag, start/stop, default reset)

STATE MACHINE:
ForegroundChanged(p)   p == last -> nothing
                       else write code(category(p)); tune or reset touch
ScreenOn / ScreenOff   last = "", write DEFAULT, full touch reset
RotationChanged(r)     forward r to touch only while tuning is applied

All sink and touch I/O is best-effort: failures are logged, never raised.
"""

import os
import json
import time
import asyncio
import tempfile
from typing import Dict, List, Optional, Any
from pathlib import Path
import logging
import numpy as np

from config import (
    THERMAL_SCONFIG,
    TOUCH_CONTROL_DIR,
    TOUCH_NODE_NAMES,
    PREFERENCES_FILE,
    THERMAL_CONTROL_KEY,
    THERMAL_SERVICE_KEY,
    THERMAL_SEGMENT_PREFIXES,
    SEGMENT_SEPARATOR,
    PACKAGE_TERMINATOR,
    SWITCH_HISTORY_SIZE,
    MAX_IO_FAILURE_WARNINGS,
)
from shared_types import (
    ThermalCategory,
    TouchParam,
    TOUCH_RESET_ORDER,
    DisplayRotation,
    TouchTuning,
    ObserverState,
    ForegroundChanged,
    ScreenStateChanged,
    DisplayRotationChanged,
    WatcherEvent,
)

# Configure logging
logger = logging.getLogger('PNGN.ThermalProfiles')

# Preference keys that share the namespace with per-package touch tuning
RESERVED_KEYS = (THERMAL_CONTROL_KEY, THERMAL_SERVICE_KEY)


class TouchControlUnavailable(Exception):
    """Touch feature is not present on this device (permanent)"""

# ============================================================================
# PREFERENCE STORE
# ============================================================================

class PreferenceStore:
    """
    Durable string key-value store backed by one JSON file.

    Every write rewrites the whole file through a temp file and os.replace,
    so readers never observe a half-written table. Writes are best-effort:
    a failed write is logged and the in-memory value stays current.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or PREFERENCES_FILE).expanduser()
        self._data: Dict[str, str] = {}
        self.write_failures = 0
        self._load_from_disk()

    def get_string(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._data.get(key, default)

    def put_string(self, key: str, value: str) -> None:
        self._data[key] = value
        self._persist()

    def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._persist()

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def _persist(self) -> bool:
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix='.prefs-', suffix='.tmp')
            with os.fdopen(fd, 'w') as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            self.write_failures += 1
            if self.write_failures <= MAX_IO_FAILURE_WARNINGS:
                logger.error(f"Failed to write preferences to {self.path}: {e}")
            else:
                logger.debug(f"Failed to write preferences to {self.path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            return False
        return True

    def _load_from_disk(self) -> None:
        """Load persisted preferences; unreadable files start empty"""
        if not self.path.exists():
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load preferences from {self.path}: {e}")
            return

        if not isinstance(data, dict):
            logger.error(f"Ignoring preferences in {self.path}: expected an object")
            return

        self._data = {str(k): str(v) for k, v in data.items() if v is not None}
        logger.debug(f"Loaded {len(self._data)} preference keys from {self.path}")

# ============================================================================
# PROFILE STORE
# ============================================================================

class ProfileStore:
    """
    Package -> thermal category table plus per-package touch tuning.

    The table is kept in the legacy single-string form, six ':'-separated
    segments (benchmark, browser, camera, dialer, gaming, streaming), each
    "thermal.<name>=" followed by comma-terminated package names:

        thermal.benchmark=com.bench,:thermal.browser=:...:thermal.streaming=

    DEFAULT is never stored; a package missing from every segment is DEFAULT.
    Touch tuning lives under the package name as "game,response,sens,resist".
    """

    def __init__(self, preferences: PreferenceStore):
        self.prefs = preferences

    # ---- category table ---------------------------------------------------

    def set_category(self, package: str, category: ThermalCategory) -> None:
        """
        Move package into category, removing it from any previous one.

        Raises:
            ValueError: package name is empty, contains ',' or ':',
                or collides with a reserved preference key
        """
        self._check_package(package)

        table = self._decode(self._get_value())
        if table is None:
            logger.error("Rebuilding unreadable thermal category table")
            table = self._empty_table()

        for packages in table.values():
            if package in packages:
                packages.remove(package)

        if category is not ThermalCategory.DEFAULT:
            table[category].append(package)

        self._write_value(self._encode(table))
        logger.debug(f"Assigned {package} -> {category.name}")

    def get_category(self, package: str) -> ThermalCategory:
        """Stored category for package, DEFAULT when absent or unreadable"""
        table = self._decode(self._get_value())
        if table is None:
            return ThermalCategory.DEFAULT

        for category in ThermalCategory.stored():
            if package in table[category]:
                return category
        return ThermalCategory.DEFAULT

    def packages_for(self, category: ThermalCategory) -> List[str]:
        if category is ThermalCategory.DEFAULT:
            return []
        table = self._decode(self._get_value())
        return list(table[category]) if table else []

    def assignments(self) -> Dict[str, ThermalCategory]:
        """All explicitly assigned packages"""
        table = self._decode(self._get_value())
        if table is None:
            return {}
        return {pkg: category for category, packages in table.items() for pkg in packages}

    # ---- touch tuning -----------------------------------------------------

    def get_touch_tuning(self, package: str) -> Optional[TouchTuning]:
        raw = self.prefs.get_string(package)
        if not raw:
            return None
        try:
            return TouchTuning.parse(raw)
        except ValueError as e:
            logger.warning(f"Ignoring malformed touch tuning for {package} ({raw!r}): {e}")
            return None

    def set_touch_tuning(self, package: str, tuning: TouchTuning) -> None:
        self._check_package(package)
        self.prefs.put_string(package, tuning.serialize())

    def clear_touch_tuning(self, package: str) -> None:
        self._check_package(package)
        self.prefs.remove(package)

    # ---- encoding ---------------------------------------------------------

    @staticmethod
    def _check_package(package: str) -> None:
        if not package or SEGMENT_SEPARATOR in package or PACKAGE_TERMINATOR in package:
            raise ValueError(f"Invalid package name: {package!r}")
        if package in RESERVED_KEYS:
            raise ValueError(f"Reserved preference key used as package name: {package!r}")

    @staticmethod
    def _empty_table() -> Dict[ThermalCategory, List[str]]:
        return {category: [] for category in ThermalCategory.stored()}

    def _get_value(self) -> str:
        value = self.prefs.get_string(THERMAL_CONTROL_KEY)
        if not value:
            value = self._encode(self._empty_table())
            self._write_value(value)
        return value

    def _write_value(self, value: str) -> None:
        self.prefs.put_string(THERMAL_CONTROL_KEY, value)

    @staticmethod
    def _encode(table: Dict[ThermalCategory, List[str]]) -> str:
        segments = []
        for prefix, category in zip(THERMAL_SEGMENT_PREFIXES, ThermalCategory.stored()):
            segments.append(prefix + ''.join(pkg + PACKAGE_TERMINATOR for pkg in table[category]))
        return SEGMENT_SEPARATOR.join(segments)

    @staticmethod
    def _decode(value: str) -> Optional[Dict[ThermalCategory, List[str]]]:
        """Parse the legacy table; None when the segment count is wrong"""
        segments = value.split(SEGMENT_SEPARATOR)
        if len(segments) != len(THERMAL_SEGMENT_PREFIXES):
            logger.error(f"Malformed thermal category table: {len(segments)} segments, "
                         f"expected {len(THERMAL_SEGMENT_PREFIXES)}")
            return None

        table = {}
        for segment, prefix, category in zip(segments, THERMAL_SEGMENT_PREFIXES, ThermalCategory.stored()):
            if segment.startswith(prefix):
                body = segment[len(prefix):]
            else:
                body = segment.partition('=')[2] if '=' in segment else segment

            packages: List[str] = []
            for pkg in body.split(PACKAGE_TERMINATOR):
                if pkg and pkg not in packages:
                    packages.append(pkg)
            table[category] = packages
        return table

# ============================================================================
# THERMAL SINK
# ============================================================================

class ThermalSink:
    """Writes thermal codes to the sconfig node. Never raises."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or THERMAL_SCONFIG)
        self.write_failures = 0
        self.writes = 0
        self.last_code: Optional[str] = None

    def write(self, code: str) -> bool:
        try:
            with open(self.path, 'w') as f:
                f.write(code)
        except OSError as e:
            self.write_failures += 1
            if self.write_failures <= MAX_IO_FAILURE_WARNINGS:
                logger.warning(f"Failed to write thermal code {code} to {self.path}: {e}")
            else:
                logger.debug(f"Failed to write thermal code {code} to {self.path}: {e}")
            return False

        self.writes += 1
        self.last_code = code
        return True

    def write_default(self) -> bool:
        return self.write(ThermalCategory.DEFAULT.code)

# ============================================================================
# TOUCH CONTROL
# ============================================================================

class TouchControl:
    """Vendor touch-feature surface"""

    supported = True

    def set_parameter(self, param: TouchParam, value: int) -> None:
        raise NotImplementedError

    def reset_parameter(self, param: TouchParam) -> None:
        raise NotImplementedError


class NullTouchControl(TouchControl):
    """Unsupported device: every operation is a no-op"""

    supported = False

    def set_parameter(self, param: TouchParam, value: int) -> None:
        pass

    def reset_parameter(self, param: TouchParam) -> None:
        pass


class SysfsTouchControl(TouchControl):
    """
    Touch parameters exposed as one sysfs node per mode id.

    The first time a node is written its previous value is remembered;
    reset_parameter writes that value back. Nodes never written are left
    alone on reset.
    """

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or TOUCH_CONTROL_DIR)
        if not self.base_dir.is_dir():
            raise TouchControlUnavailable(f"No touch control at {self.base_dir}")
        self._defaults: Dict[TouchParam, str] = {}

    def _node(self, param: TouchParam) -> Path:
        if not self.base_dir.is_dir():
            raise TouchControlUnavailable(f"Touch control at {self.base_dir} disappeared")
        return self.base_dir / TOUCH_NODE_NAMES[int(param)]

    def set_parameter(self, param: TouchParam, value: int) -> None:
        node = self._node(param)
        if param not in self._defaults:
            self._defaults[param] = node.read_text().strip()
        node.write_text(str(int(value)))

    def reset_parameter(self, param: TouchParam) -> None:
        default = self._defaults.get(param)
        if default is None:
            return
        self._node(param).write_text(default)


def acquire_touch_control(base_dir: Optional[str] = None) -> TouchControl:
    """Touch control for this device, or NullTouchControl when unsupported"""
    try:
        control = SysfsTouchControl(base_dir)
    except TouchControlUnavailable as e:
        logger.info(f"Touch tuning unsupported, thermal-only mode: {e}")
        return NullTouchControl()

    logger.info(f"Touch control at {control.base_dir}")
    return control

# ============================================================================
# SWITCH HISTORY
# ============================================================================

HISTORY_COLUMNS = ['timestamp', 'category', 'touch_applied', 'rotation']
CATEGORY_NAMES = [category.name for category in ThermalCategory]
CATEGORY_INDEX = {category: i for i, category in enumerate(ThermalCategory)}


class SwitchHistory:
    """
    Bounded log of applied thermal transitions.

    Rows are (timestamp, category index, touch applied, rotation degrees).
    When full, the oldest half is dropped.
    """

    def __init__(self, capacity: int = SWITCH_HISTORY_SIZE):
        self.capacity = capacity
        self.rows = np.zeros((capacity, len(HISTORY_COLUMNS)), dtype=np.float64)
        self.count = 0
        self.total_recorded = 0

    def record(self,
               category: ThermalCategory,
               touch_applied: bool,
               rotation: DisplayRotation,
               timestamp: Optional[float] = None) -> None:
        if self.count >= self.capacity:
            keep = self.capacity // 2
            self.rows[:keep] = self.rows[self.count - keep:self.count]
            self.count = keep

        self.rows[self.count] = (
            time.time() if timestamp is None else timestamp,
            CATEGORY_INDEX[category],
            1.0 if touch_applied else 0.0,
            int(rotation),
        )
        self.count += 1
        self.total_recorded += 1

    def dwell_times(self, now: Optional[float] = None) -> Dict[str, float]:
        """Seconds spent in each category, open interval closed at now"""
        if self.count == 0:
            return {name: 0.0 for name in CATEGORY_NAMES}

        now = time.time() if now is None else now
        stamps = self.rows[:self.count, 0]
        ends = np.append(stamps[1:], max(now, stamps[-1]))
        durations = ends - stamps
        per_category = np.bincount(
            self.rows[:self.count, 1].astype(np.int64),
            weights=durations,
            minlength=len(CATEGORY_NAMES),
        )
        return {name: float(per_category[i]) for i, name in enumerate(CATEGORY_NAMES)}

    def clear(self) -> None:
        self.rows[:] = 0.0
        self.count = 0

    def save(self, output_path: Path) -> Optional[Path]:
        """
        Write rows to a compressed .npz archive.

        Archive keys: history, column_names, category_names, total_recorded.
        """
        if self.count == 0:
            logger.warning("Cannot save switch history: no transitions recorded")
            return None

        try:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            np.savez_compressed(
                output_path,
                history=self.rows[:self.count],
                column_names=HISTORY_COLUMNS,
                category_names=CATEGORY_NAMES,
                total_recorded=self.total_recorded,
            )
        except OSError as e:
            logger.error(f"Failed to save switch history: {e}")
            return None

        logger.info(f"Saved {self.count} transitions to {output_path}")
        return output_path

# ============================================================================
# FOREGROUND WATCHER
# ============================================================================

class ForegroundWatcher:
    """
    Serialized thermal/touch state machine.

    Producers post events with the non-blocking post_* methods; one dispatch
    task drains the queue in arrival order so transitions never interleave.
    handle_event() runs a single transition directly.
    """

    def __init__(self,
                 store: ProfileStore,
                 sink: ThermalSink,
                 touch: Optional[TouchControl] = None,
                 history: Optional[SwitchHistory] = None):
        self.store = store
        self.sink = sink
        self.touch = touch if touch is not None else NullTouchControl()
        self.history = history if history is not None else SwitchHistory()
        self.state = ObserverState()

        self.touch_failures = 0
        self.events_handled = 0

        self.queue: asyncio.Queue = asyncio.Queue()
        self.dispatch_task: Optional[asyncio.Task] = None
        self.running = False

    # ---- lifecycle --------------------------------------------------------

    async def start(self):
        """Start the dispatch loop"""
        if self.running:
            return

        self.running = True
        self.dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.info("Foreground watcher started")

    async def stop(self):
        """Stop the dispatch loop; queued events are discarded"""
        self.running = False

        if self.dispatch_task:
            self.dispatch_task.cancel()
            try:
                await self.dispatch_task
            except asyncio.CancelledError:
                pass
            self.dispatch_task = None

        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()

        logger.info("Foreground watcher stopped")

    async def join(self):
        """
        Wait until every posted event has been handled.

        Returns immediately when the dispatch loop is not running, since
        nothing would drain the queue.
        """
        if not self.running:
            return
        await self.queue.join()

    def reset(self):
        self.state.reset()

    # ---- producers --------------------------------------------------------

    def post(self, event: WatcherEvent) -> None:
        self.queue.put_nowait(event)

    def post_foreground_changed(self, package: str) -> None:
        self.post(ForegroundChanged(package))

    def post_screen_state_changed(self, screen_on: bool) -> None:
        self.post(ScreenStateChanged(screen_on))

    def post_rotation_changed(self, rotation: DisplayRotation) -> None:
        self.post(DisplayRotationChanged(rotation))

    async def _dispatch_loop(self):
        while self.running:
            event = await self.queue.get()
            try:
                self.handle_event(event)
            except Exception as e:
                logger.error(f"Failed to handle {event}: {e}", exc_info=True)
            finally:
                self.queue.task_done()

    # ---- transitions ------------------------------------------------------

    def handle_event(self, event: WatcherEvent) -> None:
        if isinstance(event, ForegroundChanged):
            self.on_foreground_changed(event.package)
        elif isinstance(event, ScreenStateChanged):
            self.on_screen_state_changed(event.screen_on)
        elif isinstance(event, DisplayRotationChanged):
            self.on_rotation_changed(event.rotation)
        else:
            raise TypeError(f"Unknown watcher event: {event!r}")
        self.events_handled += 1

    def on_foreground_changed(self, package: str) -> None:
        if package == self.state.last_package:
            return

        category = self.store.get_category(package)
        logger.debug(f"Foreground {package} -> {category.name} ({category.code})")
        self.sink.write(category.code)

        if category.uses_touch_tuning:
            self._apply_touch_tuning(package)
        elif self.state.touch_applied:
            self._reset_touch()

        self.state.last_package = package
        self.history.record(category, self.state.touch_applied, self.state.rotation)

    def on_screen_state_changed(self, screen_on: bool) -> None:
        logger.debug(f"Screen {'on' if screen_on else 'off'}: restoring default profile")
        self.state.last_package = ''
        self.sink.write_default()
        self._reset_touch()
        self.history.record(ThermalCategory.DEFAULT, False, self.state.rotation)

    def on_rotation_changed(self, rotation: DisplayRotation) -> None:
        self.state.rotation = DisplayRotation(rotation)
        self._update_touch_rotation()

    # ---- touch helpers ----------------------------------------------------

    def _apply_touch_tuning(self, package: str) -> None:
        self._reset_touch()

        tuning = self.store.get_touch_tuning(package)
        if tuning is None:
            return

        self._touch_call(self.touch.set_parameter, TouchParam.TOLERANCE, tuning.sensitivity)
        self._touch_call(self.touch.set_parameter, TouchParam.UP_THRESHOLD, tuning.response_threshold)
        self._touch_call(self.touch.set_parameter, TouchParam.EDGE_FILTER, tuning.edge_resistance)
        self._touch_call(self.touch.set_parameter, TouchParam.GAME_MODE, tuning.game_mode)
        self._touch_call(self.touch.set_parameter, TouchParam.ACTIVE_MODE, int(tuning.active_mode))

        self.state.touch_applied = self.touch.supported
        self._update_touch_rotation()

    def _reset_touch(self) -> None:
        for param in TOUCH_RESET_ORDER:
            self._touch_call(self.touch.reset_parameter, param)
        self.state.touch_applied = False

    def _update_touch_rotation(self) -> None:
        if not self.state.touch_applied:
            return
        self._touch_call(self.touch.set_parameter, TouchParam.ROTATION, self.state.rotation.touch_code)

    def _touch_call(self, op, param: TouchParam, *args) -> None:
        if not self.touch.supported:
            return

        try:
            op(param, *args)
        except TouchControlUnavailable as e:
            logger.warning(f"Touch control went away, switching to thermal-only mode: {e}")
            self.touch = NullTouchControl()
        except Exception as e:
            self.touch_failures += 1
            if self.touch_failures <= MAX_IO_FAILURE_WARNINGS:
                logger.warning(f"Touch {op.__name__}({param.name}) failed: {e}")
            else:
                logger.debug(f"Touch {op.__name__}({param.name}) failed: {e}")

    # ---- introspection ----------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        """Get basic watcher statistics"""
        current = self.state.last_package
        return {
            'events_handled': self.events_handled,
            'transitions_recorded': self.history.total_recorded,
            'current_package': current,
            'current_category': self.store.get_category(current).name if current else ThermalCategory.DEFAULT.name,
            'touch_applied': self.state.touch_applied,
            'touch_supported': self.touch.supported,
            'rotation': int(self.state.rotation),
            'sink_writes': self.sink.writes,
            'sink_failures': self.sink.write_failures,
            'touch_failures': self.touch_failures,
            'dwell_seconds': self.history.dwell_times(),
        }

# ============================================================================
# SERVICE
# ============================================================================

class ThermalProfileService:
    """
    Lifecycle wrapper: enable flag, watcher and optional event source.

    The event source, when given, must provide async start(watcher) and
    async stop().
    """

    def __init__(self,
                 preferences: PreferenceStore,
                 sink: ThermalSink,
                 touch: Optional[TouchControl] = None,
                 event_source=None):
        self.prefs = preferences
        self.store = ProfileStore(preferences)
        self.sink = sink
        self.watcher = ForegroundWatcher(self.store, sink, touch)
        self.event_source = event_source
        self.running = False

    def is_enabled(self) -> bool:
        return self.prefs.get_string(THERMAL_SERVICE_KEY, 'true') == 'true'

    def set_default_thermal_profile(self) -> bool:
        return self.sink.write_default()

    async def initialize(self):
        """Start if enabled, otherwise just restore the default profile"""
        if self.is_enabled():
            await self.start()
        else:
            logger.info("Thermal profile service disabled")
            self.set_default_thermal_profile()

    async def start(self):
        if self.running:
            return

        self.prefs.put_string(THERMAL_SERVICE_KEY, 'true')
        self.watcher.reset()
        await self.watcher.start()
        if self.event_source is not None:
            await self.event_source.start(self.watcher)

        self.running = True
        logger.info("Thermal profile service started")

    async def stop(self):
        """Stop tasks and restore DEFAULT; the disabled flag is saved last"""
        try:
            if self.event_source is not None:
                await self.event_source.stop()
        finally:
            await self.watcher.stop()
            self.set_default_thermal_profile()
            self.running = False
            self.prefs.put_string(THERMAL_SERVICE_KEY, 'false')
        logger.info("Thermal profile service stopped")


# ============================================================================
# FACTORY
# ============================================================================

def create_profile_service(preferences_file: Optional[str] = None,
                           thermal_path: Optional[str] = None,
                           touch_dir: Optional[str] = None,
                           event_source=None) -> ThermalProfileService:
    """Create the profile service with device defaults"""
    return ThermalProfileService(
        PreferenceStore(preferences_file),
        ThermalSink(thermal_path),
        acquire_touch_control(touch_dir),
        event_source=event_source,
    )
