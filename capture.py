"""Audio sources feeding fixed-size sample buffers to a measurement.

Every source exposes `sample_rate`, `frames`, `open()`, `read()` and
`close()` and is a context manager. `read()` returns a float64 buffer of
exactly `frames` samples scaled to [-1, 1].
"""

import collections
import logging
import os
import select
import subprocess

import numpy as np
import soundfile as sf

from config import FRAMES_PER_BUFFER, POLL_INTERVAL_MS, SAMPLE_RATE
from errors import CaptureError

LOGGER = logging.getLogger(__name__)

INT16_SCALE = np.iinfo(np.int16).max


class Capture:
    sample_rate = SAMPLE_RATE
    frames = FRAMES_PER_BUFFER

    def open(self):
        pass

    def close(self):
        pass

    def read(self):
        raise NotImplementedError

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


class ArrayCapture(Capture):
    """Serves prepared buffers in order, then silence."""

    def __init__(self, buffers, sample_rate=SAMPLE_RATE, frames=FRAMES_PER_BUFFER):
        self.buffers = [np.asarray(b, dtype=np.float64) for b in buffers]
        self.sample_rate = sample_rate
        self.frames = frames
        self.opened = 0
        self.closed = 0
        self.reads = 0

    def open(self):
        self.opened += 1

    def close(self):
        self.closed += 1

    def read(self):
        index = self.reads
        self.reads += 1
        if index < len(self.buffers):
            return self.buffers[index]
        return np.zeros(self.frames)


class WavCapture(Capture):
    """Replays a recording, advancing one polling interval per read."""

    def __init__(self, path, frames=FRAMES_PER_BUFFER, interval_ms=POLL_INTERVAL_MS):
        self.path = path
        self.frames = frames
        self.interval_ms = interval_ms
        self.data = None
        self.position = 0

    def open(self):
        try:
            data, sample_rate = sf.read(self.path, dtype='float64', always_2d=False)
        except (RuntimeError, OSError) as e:
            raise CaptureError(f"cannot read {self.path}: {e}") from e
        if data.ndim == 2:
            data = np.mean(data, axis=1)
        self.data = data
        self.sample_rate = sample_rate
        self.position = 0
        LOGGER.debug("replaying %s: %d samples at %d Hz",
                     self.path, len(data), sample_rate)

    def close(self):
        self.data = None

    def read(self):
        if self.data is None:
            raise CaptureError("capture is not open")
        window = self.data[self.position:self.position + self.frames]
        self.position += round(self.sample_rate*self.interval_ms / 1000)
        if len(window) < self.frames:
            window = np.concatenate([window, np.zeros(self.frames - len(window))])
        return window


class FifoCapture(Capture):
    """Signed 16-bit mono PCM read from a named pipe.

    When `producer` is given it is started on open and terminated on
    close; it is expected to write raw frames into `fifo_path`.
    """

    def __init__(self, fifo_path="/tmp/audio_fifo", producer=None,
                 sample_rate=SAMPLE_RATE, frames=FRAMES_PER_BUFFER,
                 timeout_ms=1000):
        self.fifo_path = fifo_path
        self.producer = producer
        self.sample_rate = sample_rate
        self.frames = frames
        self.timeout_ms = timeout_ms
        self.proc = None
        self.fd = None
        self.poller = None
        self.pending = b""
        self.window = collections.deque(maxlen=frames)

    def open(self):
        try:
            if not os.path.exists(self.fifo_path):
                os.mkfifo(self.fifo_path)
            if self.producer:
                self.proc = subprocess.Popen(self.producer)
            self.fd = os.open(self.fifo_path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            self.close()
            raise CaptureError(f"cannot open {self.fifo_path}: {e}") from e

        self.poller = select.poll()
        self.poller.register(self.fd, select.POLLIN)
        self.pending = b""
        self.window.clear()
        self.window.extend(np.zeros(self.frames))
        LOGGER.debug("opened %s", self.fifo_path)

    def close(self):
        if self.fd is not None:
            os.close(self.fd)
            self.fd = None
        if self.proc is not None:
            self.proc.terminate()
            try:
                self.proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self.proc.kill()
                self.proc.wait()
            self.proc = None
        self.poller = None
        LOGGER.debug("closed %s", self.fifo_path)

    def _drain(self):
        chunks = [self.pending]
        while True:
            try:
                chunk = os.read(self.fd, self.frames*2)
            except BlockingIOError:
                break
            except OSError as e:
                raise CaptureError(f"read from {self.fifo_path} failed: {e}") from e
            if not chunk:
                break
            chunks.append(chunk)
        data = b"".join(chunks)
        usable = len(data) - len(data) % 2
        self.pending = data[usable:]
        return data[:usable]

    def read(self):
        if self.fd is None:
            raise CaptureError("capture is not open")
        if self.proc is not None and self.proc.poll() is not None:
            raise CaptureError(f"producer exited with code {self.proc.returncode}")

        if self.poller.poll(self.timeout_ms):
            raw = self._drain()
            if raw:
                signal = np.frombuffer(raw, dtype='<i2').astype(np.float64)
                self.window.extend(signal / INT16_SCALE)

        return np.array(self.window, dtype=np.float64)
