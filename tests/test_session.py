from __future__ import annotations

import math
import threading

import numpy as np
import pytest

from capture import ArrayCapture
from config import SpokeSettings
from errors import (CaptureError, InsufficientSignal, InvalidConfiguration,
                    MeasurementCancelled)
from session import measure, plausible, trimmed_statistics

RATE = 40960
FRAMES = 2048


def tone(frequency_hz, frames=FRAMES, rate=RATE):
    """Square wave with exactly frequency*2*frames/rate sign flips."""
    crossings = round(frequency_hz*2*frames / rate)
    signal = np.ones(frames)
    edges = np.linspace(0, frames, crossings + 2)[1:-1].astype(int)
    for i, edge in enumerate(edges):
        signal[edge:] = -1.0 if i % 2 == 0 else 1.0
    return signal


def make_settings(**overrides):
    values = dict(length=0.3, diameter=0.002, density=7850,
                  duration=1.0, calibration=1.0)
    values.update(overrides)
    return SpokeSettings(**values)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, ms):
        self.calls.append(ms)


def test_trimmed_statistics_drops_one_reading_per_side() -> None:
    readings = [float(f) for f in range(109, 99, -1)]
    mean, stdev, trimmed = trimmed_statistics(readings)
    assert list(trimmed) == [float(f) for f in range(101, 109)]
    assert mean == pytest.approx(104.5)
    expected = math.sqrt(sum((f - 104.5)**2 for f in range(101, 109)) / 8)
    assert stdev == pytest.approx(expected)


def test_trimmed_statistics_small_sets_are_not_trimmed() -> None:
    mean, stdev, trimmed = trimmed_statistics([300.0, 100.0, 200.0])
    assert list(trimmed) == [100.0, 200.0, 300.0]
    assert mean == pytest.approx(200.0)


def test_plausible_range_is_exclusive() -> None:
    assert not plausible(20)
    assert not plausible(10000)
    assert not plausible(0)
    assert not plausible(float("nan"))
    assert not plausible(float("inf"))
    assert plausible(20.5)
    assert plausible(9999)


def test_measure_runs_full_duration_and_computes_tension() -> None:
    capture = ArrayCapture([tone(400)]*10, sample_rate=RATE, frames=FRAMES)
    sleep = RecordingSleep()

    result = measure(capture, make_settings(), sleep=sleep)

    assert capture.reads == 10
    assert sleep.calls == [100]*10
    assert result.sample_count == 10
    assert result.frequency_hz == pytest.approx(400, abs=1e-9)
    assert result.stdev_hz == pytest.approx(0, abs=1e-9)
    assert result.tension_n == pytest.approx(7850*math.pi*1e-6*(2*0.3*400)**2)
    assert result.tension_kgf == pytest.approx(result.tension_n / 9.80665)
    assert capture.opened == 1
    assert capture.closed == 1


def test_measure_discards_silent_ticks() -> None:
    buffers = [np.zeros(FRAMES), tone(370), np.zeros(FRAMES), tone(370), tone(370)]
    capture = ArrayCapture(buffers, sample_rate=RATE, frames=FRAMES)

    result = measure(capture, make_settings(duration=0.5), sleep=RecordingSleep())

    assert result.sample_count == 3
    assert result.readings == (370.0, 370.0, 370.0)


def test_two_readings_are_insufficient_and_release_capture() -> None:
    capture = ArrayCapture([tone(400), tone(400)], sample_rate=RATE, frames=FRAMES)

    with pytest.raises(InsufficientSignal) as excinfo:
        measure(capture, make_settings(), sleep=RecordingSleep())

    assert excinfo.value.count == 2
    assert capture.closed == 1


def test_invalid_configuration_fails_before_capture_opens() -> None:
    capture = ArrayCapture([], sample_rate=RATE, frames=FRAMES)
    for bad in (dict(length=0), dict(diameter=-0.002),
                dict(density=float("nan")), dict(length=float("inf"))):
        with pytest.raises(InvalidConfiguration):
            measure(capture, make_settings(**bad), sleep=RecordingSleep())
    with pytest.raises(InvalidConfiguration):
        measure(capture, make_settings(estimator="fft"), sleep=RecordingSleep())
    assert capture.opened == 0


def test_duration_is_clamped_before_counting_ticks() -> None:
    capture = ArrayCapture([tone(400)]*200, sample_rate=RATE, frames=FRAMES)
    sleep = RecordingSleep()

    measure(capture, make_settings(duration=60), sleep=sleep)
    assert len(sleep.calls) == 100

    sleep = RecordingSleep()
    measure(ArrayCapture([tone(400)]*10, sample_rate=RATE, frames=FRAMES),
            make_settings(duration=0.1), sleep=sleep)
    assert len(sleep.calls) == 5


def test_calibration_is_clamped() -> None:
    capture = ArrayCapture([tone(400)]*10, sample_rate=RATE, frames=FRAMES)
    high = measure(capture, make_settings(calibration=5), sleep=RecordingSleep())
    capture = ArrayCapture([tone(400)]*10, sample_rate=RATE, frames=FRAMES)
    base = measure(capture, make_settings(calibration=1), sleep=RecordingSleep())
    assert high.tension_n == pytest.approx(2*base.tension_n)


def test_cancel_stops_session_and_releases_capture() -> None:
    capture = ArrayCapture([tone(400)]*10, sample_rate=RATE, frames=FRAMES)
    cancel = threading.Event()

    def sleep(ms):
        if capture.reads == 3:
            cancel.set()

    with pytest.raises(MeasurementCancelled):
        measure(capture, make_settings(), sleep=sleep, cancel=cancel)

    assert capture.reads == 3
    assert capture.closed == 1


def test_capture_errors_propagate_after_release() -> None:
    class FailingCapture(ArrayCapture):
        def read(self):
            raise CaptureError("device unplugged")

    capture = FailingCapture([], sample_rate=RATE, frames=FRAMES)
    with pytest.raises(CaptureError):
        measure(capture, make_settings(), sleep=RecordingSleep())
    assert capture.closed == 1


def test_on_reading_sees_each_accepted_reading() -> None:
    seen = []
    capture = ArrayCapture([tone(400), np.zeros(FRAMES), tone(400), tone(400)],
                           sample_rate=RATE, frames=FRAMES)
    measure(capture, make_settings(duration=0.5), sleep=RecordingSleep(),
            on_reading=seen.append)
    assert seen == [400.0, 400.0, 400.0]


def test_autocorrelation_estimator_session() -> None:
    t = np.arange(FRAMES) / RATE
    sine = np.sin(2*math.pi*400*t)
    capture = ArrayCapture([sine]*5, sample_rate=RATE, frames=FRAMES)

    result = measure(capture, make_settings(duration=0.5, estimator="autocorrelation"),
                     sleep=RecordingSleep())

    assert result.frequency_hz == pytest.approx(400, abs=3)


@pytest.mark.parametrize("rate", [0, -44100, float("nan"), float("inf")])
def test_unusable_sample_rate_is_invalid_configuration(rate) -> None:
    capture = ArrayCapture([tone(400)]*10, sample_rate=rate, frames=FRAMES)
    with pytest.raises(InvalidConfiguration, match="sample rate"):
        measure(capture, make_settings(), sleep=RecordingSleep())
    assert capture.opened == 0
