import logging
import time
from collections import deque

import numpy as np

from posturecoach.audio.volume import breath_scale, format_rms
from posturecoach.config import EVENT_LOG_MAX
from posturecoach.vision.pose_utils import format_tilt

LOG = logging.getLogger("posturecoach.display")


def format_elapsed(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class ConsoleDisplay:
    """Write-only outputs of a session, kept as text and mirrored to the log."""

    def __init__(self, max_events: int = EVENT_LOG_MAX):
        self.status = "Idle"
        self.tilt_text = format_tilt(np.nan)
        self.rms_text = format_rms(0.0)
        self.breath_pct = 0
        self.breath_scale = 1.0
        self.elapsed_text = format_elapsed(0)
        self.tip_text = ""
        self.tip_visible = False
        self.last_tip = ""
        self.events = deque(maxlen=max_events)

    def set_status(self, text: str):
        self.status = text
        LOG.info(f"status | {text}")

    def show_tilt(self, tilt: float):
        self.tilt_text = format_tilt(tilt)
        LOG.debug(f"tilt={self.tilt_text}")

    def show_volume(self, rms: float, pct: int):
        self.rms_text = format_rms(rms)
        self.breath_pct = int(pct)
        self.breath_scale = breath_scale(pct)
        LOG.debug(f"rms={self.rms_text} breath={self.breath_pct}%")

    def show_elapsed(self, seconds: int):
        self.elapsed_text = format_elapsed(seconds)

    def show_tip(self, text: str):
        self.last_tip = text
        self.tip_text = text
        self.tip_visible = True

    def hide_tip(self):
        self.tip_visible = False

    def log_event(self, msg: str):
        line = f"[{time.strftime('%H:%M:%S')}] {msg}"
        self.events.appendleft(line)
        LOG.info(msg)

