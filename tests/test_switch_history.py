"""SwitchHistory bookkeeping and export"""

import numpy as np
import pytest

from shared_types import ThermalCategory, DisplayRotation
from thermal_profiles import SwitchHistory, HISTORY_COLUMNS, CATEGORY_NAMES


def test_dwell_times():
    history = SwitchHistory(capacity=8)
    history.record(ThermalCategory.GAMING, True, DisplayRotation.ROTATION_0, timestamp=100.0)
    history.record(ThermalCategory.DEFAULT, False, DisplayRotation.ROTATION_0, timestamp=130.0)
    history.record(ThermalCategory.GAMING, True, DisplayRotation.ROTATION_90, timestamp=140.0)

    dwell = history.dwell_times(now=150.0)

    assert dwell['GAMING'] == pytest.approx(40.0)
    assert dwell['DEFAULT'] == pytest.approx(10.0)
    assert dwell['CAMERA'] == 0.0


def test_empty_history_dwell_is_zero():
    assert set(SwitchHistory().dwell_times().values()) == {0.0}


def test_overflow_keeps_newest_half():
    history = SwitchHistory(capacity=4)
    for i in range(5):
        history.record(ThermalCategory.BROWSER, False, DisplayRotation.ROTATION_0, timestamp=float(i))

    assert history.count == 3
    assert history.total_recorded == 5
    assert list(history.rows[:history.count, 0]) == [2.0, 3.0, 4.0]


def test_save_npz(tmp_path):
    history = SwitchHistory(capacity=4)
    history.record(ThermalCategory.BENCHMARK, True, DisplayRotation.ROTATION_180, timestamp=1.0)

    path = history.save(tmp_path / 'out' / 'history.npz')

    with np.load(path) as archive:
        assert archive['history'].shape == (1, len(HISTORY_COLUMNS))
        assert archive['history'].dtype == np.float64
        assert list(archive['column_names']) == HISTORY_COLUMNS
        assert list(archive['category_names']) == CATEGORY_NAMES
        row = archive['history'][0]
        assert CATEGORY_NAMES[int(row[1])] == 'BENCHMARK'
        assert row[2] == 1.0
        assert row[3] == 180.0


def test_save_empty_history_returns_none(tmp_path):
    assert SwitchHistory().save(tmp_path / 'history.npz') is None


def test_clear():
    history = SwitchHistory(capacity=4)
    history.record(ThermalCategory.DIALER, False, DisplayRotation.ROTATION_0)
    history.clear()
    assert history.count == 0
