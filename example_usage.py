#!/usr/bin/env python3
"""
🔥🐧🔥 Thermal Profile Switcher - Usage Example
============================================
Copyright (c) 2025 PNGN-Tec LLC

Replays a short app-switching session against a scratch directory:
- sconfig node and touch nodes are plain files
- Benchmark = com.bench, Gaming = com.game (with touch tuning)
- screen off in the middle, rotation change while gaming

Run on a device with --device to use the real sysfs nodes and dumpsys.
"""

import sys
import asyncio
import logging
import tempfile
from pathlib import Path

from config import TOUCH_NODE_NAMES
from shared_types import ThermalCategory, TouchTuning, DisplayRotation
from thermal_profiles import create_profile_service
from android_events import AndroidEventSource


async def replay(workdir: Path):
    touch_dir = workdir / 'touch_dev'
    touch_dir.mkdir()
    for name in TOUCH_NODE_NAMES.values():
        (touch_dir / name).write_text('0')
    sconfig = workdir / 'sconfig'

    service = create_profile_service(
        preferences_file=str(workdir / 'prefs.json'),
        thermal_path=str(sconfig),
        touch_dir=str(touch_dir),
    )
    service.store.set_category('com.bench', ThermalCategory.BENCHMARK)
    service.store.set_category('com.game', ThermalCategory.GAMING)
    service.store.set_touch_tuning('com.game', TouchTuning(1, 3, 4, 2))

    await service.initialize()
    watcher = service.watcher

    def show(label):
        touch = {name: (touch_dir / name).read_text() for name in TOUCH_NODE_NAMES.values()}
        print(f"{label:<28} sconfig={sconfig.read_text():<3} touch={touch}")

    for package in ('com.bench', 'com.game'):
        watcher.post_foreground_changed(package)
        await watcher.join()
        show(f"foreground {package}")

    watcher.post_rotation_changed(DisplayRotation.ROTATION_90)
    await watcher.join()
    show("rotated 90")

    watcher.post_screen_state_changed(False)
    await watcher.join()
    show("screen off")

    watcher.post_foreground_changed('com.other')
    await watcher.join()
    show("foreground com.other")

    stats = watcher.get_statistics()
    await service.stop()
    show("service stopped")

    print("\n📊 Statistics:")
    print(f"   Events: {stats['events_handled']}")
    print(f"   Transitions: {stats['transitions_recorded']}")
    print(f"   Sink writes: {stats['sink_writes']} ({stats['sink_failures']} failed)")

    saved = watcher.history.save(workdir / 'switch_history.npz')
    if saved:
        print(f"   History: {saved}")


async def run_on_device():
    service = create_profile_service(event_source=AndroidEventSource())
    await service.initialize()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await service.stop()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
    )

    if '--device' in sys.argv[1:]:
        try:
            asyncio.run(run_on_device())
        except KeyboardInterrupt:
            print("\n⚠️  Interrupted by user")
        return

    with tempfile.TemporaryDirectory() as tmp:
        asyncio.run(replay(Path(tmp)))


if __name__ == "__main__":
    main()
