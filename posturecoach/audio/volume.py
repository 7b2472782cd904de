import asyncio
import logging
import math

import numpy as np

from posturecoach.config import FFT_SIZE, FRAME_INTERVAL_S

LOG = logging.getLogger("posturecoach.volume")


def estimate_rms(buf) -> float:
    """RMS of unsigned 8-bit time-domain samples centered on 128.

    Normal speech and breathing sit around 0..0.5; the value is not clamped.
    """
    x = np.asarray(buf, dtype=np.float64)
    if x.size == 0:
        return 0.0
    v = (x - 128.0) / 128.0
    return float(np.sqrt(np.mean(v * v)))


def rms_to_percent(rms: float) -> int:
    # 0..0.5 maps onto 0..100
    if rms is None or math.isnan(rms) or rms <= 0:
        return 0
    return int(min(100, math.floor(rms * 200 + 0.5)))


def breath_scale(percent: float) -> float:
    return 1.0 + min(percent / 100.0, 0.5)


def format_rms(rms: float) -> str:
    return f"{(rms or 0.0):.2f}"


class VolumeMeter:
    """Owns the analysis buffer and re-reads the audio source into it each tick."""

    def __init__(self, source=None, fft_size: int = FFT_SIZE):
        self.source = source
        self.buf = np.full(int(fft_size), 128, dtype=np.uint8)
        self.last_rms = 0.0
        self.last_pct = 0

    def measure(self) -> float:
        if self.source is None:
            return 0.0
        self.source.read_time_domain(self.buf)
        return estimate_rms(self.buf)

    def tick(self):
        rms = self.measure()
        pct = rms_to_percent(rms)
        self.last_rms, self.last_pct = rms, pct
        return rms, pct


async def run_volume_loop(meter: VolumeMeter, display, interval: float = FRAME_INTERVAL_S):
    while True:
        try:
            rms, pct = meter.tick()
        except Exception:
            LOG.exception("volume tick failed")
            rms, pct = 0.0, 0
        display.show_volume(rms, pct)
        await asyncio.sleep(interval)
