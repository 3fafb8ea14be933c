"""dumpsys parsing and the polling event source"""

import asyncio

import pytest

from config import DUMPSYS_ACTIVITY_CMD, DUMPSYS_POWER_CMD, DUMPSYS_INPUT_CMD
from shared_types import DisplayRotation
from android_events import (
    AndroidEventSource,
    parse_foreground_package,
    parse_screen_on,
    parse_rotation,
)

ACTIVITIES = """
ACTIVITY MANAGER ACTIVITIES (dumpsys activity activities)
Display #0 (activities from top to bottom):
  * Task{8a7b6c5 #42 type=standard A=10123:com.example.game U=0 visible=true}
    topResumedActivity=ActivityRecord{f3c1d2a u0 com.example.game/.MainActivity t42}
"""

LEGACY_ACTIVITIES = """
  mResumedActivity: ActivityRecord{1b2c3d4 u0 com.android.chrome/org.chromium.chrome.browser.ChromeTabbedActivity t7}
"""


def test_parse_foreground_package():
    assert parse_foreground_package(ACTIVITIES) == 'com.example.game'
    assert parse_foreground_package(LEGACY_ACTIVITIES) == 'com.android.chrome'
    assert parse_foreground_package('nothing here') is None


@pytest.mark.parametrize('text,expected', [
    ('  mWakefulness=Awake\n', True),
    ('  mWakefulness=Asleep\n', False),
    ('  mWakefulness=Dozing\n', False),
    ('no power state', None),
])
def test_parse_screen_on(text, expected):
    assert parse_screen_on(text) is expected


@pytest.mark.parametrize('index,rotation', [
    (0, DisplayRotation.ROTATION_0),
    (1, DisplayRotation.ROTATION_90),
    (2, DisplayRotation.ROTATION_180),
    (3, DisplayRotation.ROTATION_270),
])
def test_parse_rotation(index, rotation):
    assert parse_rotation(f"    SurfaceOrientation: {index}\n") is rotation


def test_parse_rotation_missing():
    assert parse_rotation('') is None


class RecordingWatcher:
    def __init__(self):
        self.posted = []

    def post_foreground_changed(self, package):
        self.posted.append(('foreground', package))

    def post_screen_state_changed(self, screen_on):
        self.posted.append(('screen', screen_on))

    def post_rotation_changed(self, rotation):
        self.posted.append(('rotation', rotation))


class ScriptedSource(AndroidEventSource):
    """Returns canned dumpsys output instead of spawning processes"""

    def __init__(self):
        super().__init__()
        self.outputs = {}

    async def _run(self, cmd):
        return self.outputs.get(tuple(cmd))


@pytest.fixture
def source():
    src = ScriptedSource()
    src.watcher = RecordingWatcher()
    return src


@pytest.mark.asyncio
async def test_foreground_posts_only_changes(source):
    source.outputs[tuple(DUMPSYS_ACTIVITY_CMD)] = ACTIVITIES
    await source.poll_foreground()
    await source.poll_foreground()

    source.outputs[tuple(DUMPSYS_ACTIVITY_CMD)] = LEGACY_ACTIVITIES
    await source.poll_foreground()

    assert source.watcher.posted == [
        ('foreground', 'com.example.game'),
        ('foreground', 'com.android.chrome'),
    ]


@pytest.mark.asyncio
async def test_failed_dumpsys_posts_nothing(source):
    await source.poll_foreground()
    await source.poll_display()
    assert source.watcher.posted == []


@pytest.mark.asyncio
async def test_screen_change_reposts_foreground(source):
    source.outputs[tuple(DUMPSYS_ACTIVITY_CMD)] = ACTIVITIES
    source.outputs[tuple(DUMPSYS_POWER_CMD)] = 'mWakefulness=Awake'
    await source.poll_display()
    await source.poll_foreground()

    source.outputs[tuple(DUMPSYS_POWER_CMD)] = 'mWakefulness=Asleep'
    await source.poll_display()
    source.outputs[tuple(DUMPSYS_POWER_CMD)] = 'mWakefulness=Awake'
    await source.poll_display()
    await source.poll_foreground()

    assert source.watcher.posted == [
        ('foreground', 'com.example.game'),
        ('screen', False),
        ('screen', True),
        ('foreground', 'com.example.game'),
    ]


@pytest.mark.asyncio
async def test_rotation_changes_posted(source):
    source.outputs[tuple(DUMPSYS_INPUT_CMD)] = 'SurfaceOrientation: 0'
    await source.poll_display()
    await source.poll_display()
    source.outputs[tuple(DUMPSYS_INPUT_CMD)] = 'SurfaceOrientation: 1'
    await source.poll_display()

    assert source.watcher.posted == [
        ('rotation', DisplayRotation.ROTATION_0),
        ('rotation', DisplayRotation.ROTATION_90),
    ]


@pytest.mark.asyncio
async def test_run_missing_binary_returns_none():
    source = AndroidEventSource(timeout=1.0)
    assert await source._run(['definitely-not-a-real-dumpsys-binary']) is None


@pytest.mark.asyncio
async def test_start_stop(source):
    watcher = RecordingWatcher()
    source.foreground_interval = 0.01
    source.screen_interval = 0.01
    source.outputs[tuple(DUMPSYS_ACTIVITY_CMD)] = ACTIVITIES

    await source.start(watcher)
    for _ in range(50):
        if watcher.posted:
            break
        await asyncio.sleep(0.01)
    await source.stop()

    assert watcher.posted[0] == ('foreground', 'com.example.game')
    assert source.foreground_task is None
