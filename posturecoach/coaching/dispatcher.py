import asyncio
import logging
import math
import time
from dataclasses import dataclass

from posturecoach.config import (
    POSTURE_TIP, TILT_GOOD_DEG, TILT_TIP_DEG, TIP_COOLDOWN_MS, TIP_DISPLAY_MS)

LOG = logging.getLogger("posturecoach.coach")


def now_ms() -> float:
    return time.monotonic() * 1000.0


def _valid(v) -> bool:
    return v is not None and not (isinstance(v, float) and math.isnan(v))


@dataclass(frozen=True)
class TipEvent:
    text: str
    triggered_at: float


class CoachingDispatcher:
    """
    Maps the live tilt signal to at most one tip at a time.
    One cooldown gate is shared by every signal-triggered tip; lifecycle
    announcements bypass it. Showing and speaking a tip never block the caller.
    """

    def __init__(self, display, speak_fn=None, voice_enabled: bool = True,
                 tip_deg: float = TILT_TIP_DEG, good_deg: float = TILT_GOOD_DEG,
                 cooldown_ms: float = TIP_COOLDOWN_MS, display_ms: float = TIP_DISPLAY_MS):
        self.display = display
        self.speak_fn = speak_fn or (lambda _txt: None)
        self.voice_enabled = bool(voice_enabled)
        self.tip_deg = float(tip_deg)
        self.good_deg = float(good_deg)
        self.cooldown_ms = float(cooldown_ms)
        self.display_ms = float(display_ms)
        self.last_tip_ts = None
        self.active_tip = None
        self._hide_handle = None

    def set_voice(self, enabled: bool):
        self.voice_enabled = bool(enabled)
        LOG.info(f"voice={'on' if self.voice_enabled else 'off'}")

    def maybe_tip(self, tilt: float, now: float):
        if not _valid(tilt):
            return None
        if tilt > self.tip_deg:
            if self.last_tip_ts is not None and (now - self.last_tip_ts) < self.cooldown_ms:
                return None
            self.last_tip_ts = now
            return self._fire(POSTURE_TIP, now)
        if tilt <= self.good_deg:
            # good posture: nothing is dispatched yet
            return None
        return None

    def announce(self, text: str, now: float | None = None) -> TipEvent:
        return self._fire(text, now_ms() if now is None else now)

    def _fire(self, text: str, now: float) -> TipEvent:
        ev = TipEvent(text, now)
        self.active_tip = ev
        LOG.info(f"tip | {text}")
        self.display.show_tip(text)
        self._schedule_hide(ev)
        if self.voice_enabled:
            try:
                self.speak_fn(text)
            except Exception as e:
                LOG.error(f"speak failed: {e}")
        return ev

    def _schedule_hide(self, ev: TipEvent):
        self._cancel_hide()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOG.debug("no running loop; tip stays until replaced")
            return
        self._hide_handle = loop.call_later(self.display_ms / 1000.0, self._hide, ev)

    def _hide(self, ev: TipEvent):
        self._hide_handle = None
        if self.active_tip is ev:
            self.active_tip = None
            self.display.hide_tip()

    def _cancel_hide(self):
        if self._hide_handle is not None:
            self._hide_handle.cancel()
            self._hide_handle = None

    @property
    def hide_pending(self) -> bool:
        return self._hide_handle is not None

    def reset(self):
        self.last_tip_ts = None

    def close(self):
        self._cancel_hide()
        if self.active_tip is not None:
            self.active_tip = None
            self.display.hide_tip()
