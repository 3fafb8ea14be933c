import pytest

from config import TOUCH_NODE_NAMES
from shared_types import ThermalCategory, TouchTuning
from thermal_profiles import (
    PreferenceStore,
    ProfileStore,
    ThermalSink,
    TouchControl,
    ForegroundWatcher,
)


class RecordingTouchControl(TouchControl):
    """Touch control that records every call as (op, param, value)"""

    def __init__(self):
        self.calls = []

    def set_parameter(self, param, value):
        self.calls.append(('set', param, value))

    def reset_parameter(self, param):
        self.calls.append(('reset', param, None))

    def sets(self):
        return {param: value for op, param, value in self.calls if op == 'set'}


class RecordingSink(ThermalSink):
    """Sink that keeps every code it was asked to write"""

    def __init__(self, path):
        super().__init__(path)
        self.codes = []

    def write(self, code):
        self.codes.append(code)
        return super().write(code)


@pytest.fixture
def prefs_path(tmp_path):
    return tmp_path / 'prefs.json'


@pytest.fixture
def prefs(prefs_path):
    return PreferenceStore(str(prefs_path))


@pytest.fixture
def store(prefs):
    return ProfileStore(prefs)


@pytest.fixture
def sconfig(tmp_path):
    path = tmp_path / 'sconfig'
    path.write_text('')
    return path


@pytest.fixture
def sink(sconfig):
    return RecordingSink(str(sconfig))


@pytest.fixture
def touch():
    return RecordingTouchControl()


@pytest.fixture
def touch_dir(tmp_path):
    base = tmp_path / 'touch_dev'
    base.mkdir()
    for name in TOUCH_NODE_NAMES.values():
        (base / name).write_text('0')
    return base


@pytest.fixture
def watcher(store, sink, touch):
    return ForegroundWatcher(store, sink, touch)


@pytest.fixture
def configured_store(store):
    """Benchmark = com.bench, Gaming = com.game, both with touch tuning"""
    store.set_category('com.bench', ThermalCategory.BENCHMARK)
    store.set_category('com.game', ThermalCategory.GAMING)
    store.set_touch_tuning('com.bench', TouchTuning(0, 5, 5, 5))
    store.set_touch_tuning('com.game', TouchTuning(1, 3, 4, 2))
    return store


@pytest.fixture
def unwritable_prefs(tmp_path):
    """Preferences whose parent path is a regular file, so every write fails"""
    blocker = tmp_path / 'blocker'
    blocker.write_text('')
    return PreferenceStore(str(blocker / 'prefs.json'))
