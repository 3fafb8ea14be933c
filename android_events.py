#!/usr/bin/env python3
"""
🐧 Android Event Source
======================
Copyright (c) 2025 PNGN-Tec LLC

Feeds a ForegroundWatcher from dumpsys output.

Two independent loops:
- foreground loop: top resumed activity every FOREGROUND_POLL_INTERVAL
- display loop: wakefulness + surface orientation every SCREEN_POLL_INTERVAL

Only changes are posted. A screen on/off change also forgets the last seen
package so the same app is re-posted once the watcher has reset.
"""

import re
import asyncio
import logging
from typing import List, Optional

from config import (
    FOREGROUND_POLL_INTERVAL,
    SCREEN_POLL_INTERVAL,
    DUMPSYS_TIMEOUT,
    DUMPSYS_ACTIVITY_CMD,
    DUMPSYS_POWER_CMD,
    DUMPSYS_INPUT_CMD,
)
from shared_types import DisplayRotation

logger = logging.getLogger('PNGN.AndroidEvents')

# topResumedActivity=ActivityRecord{f3c1d2a u0 com.example.game/.MainActivity t12}
# mResumedActivity: ActivityRecord{f3c1d2a u0 com.example.game/.MainActivity t12}
_RE_RESUMED = re.compile(
    r"(?:topResumedActivity|mResumedActivity|ResumedActivity)[=:]\s*"
    r"ActivityRecord\{\S+\s+u\d+\s+([^/\s}]+)/"
)

# mWakefulness=Awake | Asleep | Dozing | Dreaming
_RE_WAKEFULNESS = re.compile(r"mWakefulness=(\w+)")

# SurfaceOrientation: 1
_RE_ORIENTATION = re.compile(r"SurfaceOrientation:\s*(\d)")

# ============================================================================
# PARSERS
# ============================================================================

def parse_foreground_package(output: str) -> Optional[str]:
    """Package of the top resumed activity, or None"""
    match = _RE_RESUMED.search(output)
    return match.group(1) if match else None


def parse_screen_on(output: str) -> Optional[bool]:
    """True when awake, False when asleep/dozing, None if not reported"""
    match = _RE_WAKEFULNESS.search(output)
    if not match:
        return None
    return match.group(1).lower() in ('awake', 'dreaming')


def parse_rotation(output: str) -> Optional[DisplayRotation]:
    match = _RE_ORIENTATION.search(output)
    if not match:
        return None
    return DisplayRotation.from_surface(int(match.group(1)))

# ============================================================================
# EVENT SOURCE
# ============================================================================

class AndroidEventSource:
    """Polls dumpsys and posts changes to the watcher"""

    def __init__(self,
                 foreground_interval: float = FOREGROUND_POLL_INTERVAL,
                 screen_interval: float = SCREEN_POLL_INTERVAL,
                 timeout: float = DUMPSYS_TIMEOUT):
        self.foreground_interval = foreground_interval
        self.screen_interval = screen_interval
        self.timeout = timeout

        self.watcher = None
        self.last_package: Optional[str] = None
        self.last_screen_on: Optional[bool] = None
        self.last_rotation: Optional[DisplayRotation] = None

        self.foreground_task = None
        self.display_task = None
        self.running = False

    async def start(self, watcher):
        if self.running:
            return

        self.watcher = watcher
        self.running = True
        self.foreground_task = asyncio.create_task(self._foreground_loop())
        self.display_task = asyncio.create_task(self._display_loop())
        logger.info("Android event source started (foreground + display loops)")

    async def stop(self):
        self.running = False

        for task in (self.foreground_task, self.display_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self.foreground_task = None
        self.display_task = None
        logger.info("Android event source stopped")

    async def _run(self, cmd: List[str]) -> Optional[str]:
        """Run a dumpsys command; None on failure or timeout"""
        proc = None
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )

            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)

            if proc.returncode == 0:
                return stdout.decode(errors='replace')
            logger.debug(f"{' '.join(cmd)} exited with {proc.returncode}")
        except asyncio.TimeoutError:
            logger.debug(f"{' '.join(cmd)} timed out after {self.timeout}s")
        except OSError as e:
            logger.debug(f"{' '.join(cmd)} failed: {e}")
        finally:
            if proc and proc.returncode is None:
                try:
                    proc.kill()
                    await proc.wait()
                except ProcessLookupError:
                    pass

        return None

    async def poll_foreground(self) -> None:
        output = await self._run(DUMPSYS_ACTIVITY_CMD)
        if output is None:
            return

        package = parse_foreground_package(output)
        if package and package != self.last_package:
            self.last_package = package
            self.watcher.post_foreground_changed(package)

    async def poll_display(self) -> None:
        power = await self._run(DUMPSYS_POWER_CMD)
        screen_on = parse_screen_on(power) if power is not None else None
        if screen_on is not None and screen_on != self.last_screen_on:
            first_reading = self.last_screen_on is None
            self.last_screen_on = screen_on
            if not first_reading:
                self.last_package = None
                self.watcher.post_screen_state_changed(screen_on)

        inputs = await self._run(DUMPSYS_INPUT_CMD)
        rotation = parse_rotation(inputs) if inputs is not None else None
        if rotation is not None and rotation != self.last_rotation:
            self.last_rotation = rotation
            self.watcher.post_rotation_changed(rotation)

    async def _foreground_loop(self):
        while self.running:
            try:
                await self.poll_foreground()
                await asyncio.sleep(self.foreground_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Foreground loop error: {e}")
                await asyncio.sleep(self.foreground_interval)

    async def _display_loop(self):
        while self.running:
            try:
                await self.poll_display()
                await asyncio.sleep(self.screen_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Display loop error: {e}")
                await asyncio.sleep(self.screen_interval)
