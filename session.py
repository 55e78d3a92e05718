"""Measurement session: sample a plucked spoke, reduce the readings, compute tension.

`measure` drives a capture source for the configured duration, keeps
the plausible pitch readings, trims the extremes and turns the trimmed
mean into a tension. The capture source, the sleep primitive and the
cancellation token are passed in so the whole loop runs without a
microphone in tests.
"""

import logging
import math
import time
from dataclasses import dataclass

import numpy as np

import pitch
import spokes
from config import (FREQUENCY_MAX, FREQUENCY_MIN, MIN_READINGS,
                    POLL_INTERVAL_MS, TRIM_FRACTION)
from errors import InsufficientSignal, InvalidConfiguration, MeasurementCancelled

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Measurement:
    frequency_hz: float
    tension_n: float
    tension_kgf: float
    sample_count: int
    stdev_hz: float
    readings: tuple = ()


def sleep_ms(ms):
    time.sleep(ms / 1000)


def plausible(frequency):
    return math.isfinite(frequency) and FREQUENCY_MIN < frequency < FREQUENCY_MAX


def trimmed_statistics(readings, trim_fraction=TRIM_FRACTION):
    """Mean and population standard deviation after symmetric trimming.

    `floor(N*trim_fraction)` readings are dropped from each end of the
    sorted set. Returns (mean, stdev, trimmed readings).
    """
    ordered = sorted(readings)
    n = len(ordered)
    if n == 0:
        raise ValueError("no readings to reduce")
    trim = math.floor(n*trim_fraction)
    upper = (n - trim) or n
    trimmed = np.array(ordered[trim:upper], dtype=np.float64)

    mean = float(np.mean(trimmed))
    variance = float(np.mean((trimmed - mean)**2))
    return mean, math.sqrt(variance), trimmed


def collect_readings(capture, iterations, estimator, sleep=sleep_ms,
                     interval_ms=POLL_INTERVAL_MS, cancel=None, on_reading=None):
    readings = []
    for i in range(iterations):
        if cancel is not None and cancel.is_set():
            raise MeasurementCancelled(f"cancelled after {i} of {iterations} ticks")

        frequency = float(estimator(capture.read(), capture.sample_rate))
        if plausible(frequency):
            readings.append(frequency)
            if on_reading is not None:
                on_reading(frequency)
        else:
            LOGGER.debug("tick %d: discarded %.1f Hz", i, frequency)

        sleep(interval_ms)
    return readings


def measure(capture, settings, sleep=sleep_ms, cancel=None, on_reading=None):
    """Run one measurement session and return a `Measurement`.

    Raises InvalidConfiguration before touching the capture source,
    InsufficientSignal when fewer than MIN_READINGS readings survive the
    range filter, MeasurementCancelled when `cancel` is set, and lets
    CaptureError from the source propagate. The source is closed on
    every path.
    """
    settings = settings.clamped().validate()
    estimator = pitch.ESTIMATORS.get(settings.estimator)
    if estimator is None:
        raise InvalidConfiguration(f"unknown estimator: {settings.estimator}")
    if not math.isfinite(capture.sample_rate) or capture.sample_rate <= 0:
        raise InvalidConfiguration(f"invalid sample rate: {capture.sample_rate}")

    iterations = settings.iterations(POLL_INTERVAL_MS)
    LOGGER.info("measuring for %.1fs (%d ticks, %s)",
                settings.duration, iterations, settings.estimator)

    with capture:
        readings = collect_readings(capture, iterations, estimator,
                                    sleep=sleep, cancel=cancel,
                                    on_reading=on_reading)

    if len(readings) < MIN_READINGS:
        LOGGER.info("insufficient signal: %d readings", len(readings))
        raise InsufficientSignal(len(readings), MIN_READINGS)

    frequency, stdev, _ = trimmed_statistics(readings)
    tension = spokes.tension(frequency, settings.length, settings.diameter,
                             settings.density, settings.calibration)
    LOGGER.info("%.1f Hz from %d readings -> %.0f N", frequency, len(readings), tension)

    return Measurement(frequency_hz=frequency,
                       tension_n=tension,
                       tension_kgf=spokes.newton2kgf(tension),
                       sample_count=len(readings),
                       stdev_hz=stdev,
                       readings=tuple(readings))


def format_measurement(result):
    return (f"{result.frequency_hz:.1f}Hz -> {result.tension_n:.0f}N"
            f" = {result.tension_kgf:.1f}kgf"
            f" ({result.sample_count} samples, stdev {result.stdev_hz:.1f}Hz)")
