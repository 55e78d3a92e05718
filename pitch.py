import numpy as np
import scipy

from config import FREQUENCY_MAX, FREQUENCY_MIN


def zero_crossing_frequency(signal, sample_rate):
    """Pitch estimate from the zero-crossing rate of one buffer.

    A crossing is a step from negative to non-negative or from positive
    to non-positive. Two crossings make one cycle, so the estimate is
    crossings*sample_rate / (2*len(signal)). Returns 0 when the buffer
    never changes sign. DC offset and broadband noise bias the result;
    callers are expected to range-filter and trim.
    """
    signal = np.asarray(signal, dtype=np.float64)
    if len(signal) < 2:
        return 0.0

    prev = signal[:-1]
    cur = signal[1:]
    rising = (prev < 0) & (cur >= 0)
    falling = (prev > 0) & (cur <= 0)
    crossings = int(np.count_nonzero(rising | falling))

    return crossings*sample_rate / (2*len(signal))


def autocorrelation_frequency(signal, sample_rate,
                              frequency_min=FREQUENCY_MIN,
                              frequency_max=FREQUENCY_MAX):
    signal = np.asarray(signal, dtype=np.float64)
    if len(signal) < 3:
        return 0.0
    signal = signal - np.mean(signal)

    min_lag = max(1, round(sample_rate / frequency_max))
    max_lag = min(len(signal) - 1, round(sample_rate / frequency_min))
    if max_lag - min_lag < 3:
        return 0.0

    corr = np.correlate(signal, signal, mode='full')
    corr = corr[(len(corr) // 2):]
    corr[:min_lag] = 0

    corr_max = np.max(corr)
    if corr_max <= 0:
        return 0.0
    corr = corr[min_lag:max_lag] / corr_max

    peaks, _ = scipy.signal.find_peaks(corr)
    if len(peaks) == 0:
        return 0.0

    p = peaks[np.argmax(corr[peaks])]
    lag = p + min_lag
    if 0 < p < len(corr) - 1:
        y0, y1, y2 = corr[p - 1], corr[p], corr[p + 1]
        denominator = y0 - 2*y1 + y2
        if denominator != 0:
            lag += 0.5*(y0 - y2) / denominator

    return sample_rate / lag


ESTIMATORS = {
    "zero_crossing": zero_crossing_frequency,
    "autocorrelation": autocorrelation_frequency,
}
