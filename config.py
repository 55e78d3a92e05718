import logging
import math
import numbers
from dataclasses import dataclass

import spokes
from errors import InvalidConfiguration

LOGGER = logging.getLogger(__name__)

SAMPLE_RATE = 48000
FRAMES_PER_BUFFER = 2048

POLL_INTERVAL_MS = 100
FREQUENCY_MIN = 20
FREQUENCY_MAX = 10000
MIN_READINGS = 3
TRIM_FRACTION = 0.15

DURATION_MIN = 0.5
DURATION_MAX = 10
DURATION_DEFAULT = 3
CALIBRATION_MIN = 0.5
CALIBRATION_MAX = 2.0
CALIBRATION_DEFAULT = 1.0

ESTIMATOR_DEFAULT = "zero_crossing"


def read_defines(path):
    """Sample rate and buffer size declared by a capture producer's C source.

    Only `#define SAMPLE_RATE` and `#define FRAMES_PER_BUFFER` are
    recognized; missing ones keep the module defaults. An unreadable file
    or a non-integer value is an InvalidConfiguration.
    """
    sample_rate = SAMPLE_RATE
    frames = FRAMES_PER_BUFFER
    try:
        with open(path) as source:
            lines = source.readlines()
    except OSError as e:
        raise InvalidConfiguration(f"cannot read defines from {path}: {e}") from e

    for line in lines:
        if not line.startswith("#define"):
            continue
        parts = line.split()
        if len(parts) < 3:
            continue
        try:
            match parts[1]:
                case "SAMPLE_RATE":
                    sample_rate = int(parts[2])
                case "FRAMES_PER_BUFFER":
                    frames = int(parts[2])
        except ValueError as e:
            raise InvalidConfiguration(
                f"{path}: {parts[1]} is not an integer: {parts[2]}") from e
    if sample_rate <= 0 or frames <= 0:
        raise InvalidConfiguration(
            f"{path}: invalid format sample_rate={sample_rate} frames={frames}")
    LOGGER.debug("%s: sample_rate=%d frames=%d", path, sample_rate, frames)
    return sample_rate, frames


def _clamp(value, low, high, default):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or value == 0:
        return default
    return min(max(value, low), high)


def clamp_duration(value):
    return _clamp(value, DURATION_MIN, DURATION_MAX, DURATION_DEFAULT)


def clamp_calibration(value):
    return _clamp(value, CALIBRATION_MIN, CALIBRATION_MAX, CALIBRATION_DEFAULT)


@dataclass(frozen=True)
class SpokeSettings:
    length: float  # meters, vibrating length
    diameter: float  # meters
    density: float  # kg/m³
    duration: float = DURATION_DEFAULT  # seconds
    calibration: float = CALIBRATION_DEFAULT
    estimator: str = ESTIMATOR_DEFAULT

    @classmethod
    def from_user(cls, length_mm, diameter_mm, material="steel",
                  duration=DURATION_DEFAULT, calibration=CALIBRATION_DEFAULT,
                  estimator=ESTIMATOR_DEFAULT):
        return cls(length=float(length_mm) / 1000,
                   diameter=float(diameter_mm) / 1000,
                   density=spokes.material_density(material),
                   duration=clamp_duration(duration),
                   calibration=clamp_calibration(calibration),
                   estimator=estimator)

    def clamped(self):
        return SpokeSettings(self.length, self.diameter, self.density,
                             clamp_duration(self.duration),
                             clamp_calibration(self.calibration),
                             self.estimator)

    def validate(self):
        for name in ("length", "diameter", "density"):
            value = getattr(self, name)
            if not isinstance(value, numbers.Real) or isinstance(value, bool):
                raise InvalidConfiguration(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or value <= 0:
                raise InvalidConfiguration(f"{name} must be positive, got {value}")
        return self

    def iterations(self, interval_ms=POLL_INTERVAL_MS):
        return math.floor(self.duration*1000 / interval_ms)
