import logging
import threading

import pyttsx3

from posturecoach.config import TTS_RATE, TTS_VOLUME

LOG = logging.getLogger("posturecoach.tts")


class TTS:
    """Speaks coaching tips on a worker thread so the event loop never blocks.

    Tips are short-lived: only the newest one waits to be spoken, and a tip
    that arrives while another is playing replaces whatever was still
    waiting. ``close()`` lets the waiting tip (usually the end-of-session
    tip) play before the engine stops.
    """

    def __init__(self, rate: int = TTS_RATE, volume: float = TTS_VOLUME,
                 voice: str | None = None, engine_factory=pyttsx3.init):
        self.rate = int(rate)
        self.volume = float(volume)
        self.voice = voice
        self._engine_factory = engine_factory
        self._cond = threading.Condition()
        self._pending = None
        self._closing = False
        self.spoken = 0
        self.replaced = 0
        self._worker = threading.Thread(target=self._run, name="tts-worker", daemon=True)
        self._worker.start()

    def _open_engine(self):
        engine = self._engine_factory()
        engine.setProperty("rate", self.rate)
        engine.setProperty("volume", self.volume)
        if self.voice:
            wanted = self.voice.lower()
            for v in engine.getProperty("voices") or []:
                label = f"{getattr(v, 'name', '') or ''} {getattr(v, 'id', '') or ''}"
                if wanted in label.lower():
                    engine.setProperty("voice", v.id)
                    LOG.info(f"voice | {label.strip()}")
                    break
            else:
                LOG.warning(f"voice '{self.voice}' not found, using the default")
        return engine

    def say(self, text: str):
        if not text:
            return
        with self._cond:
            if self._closing:
                LOG.debug(f"speech closed, dropping | {text}")
                return
            if self._pending is not None:
                self.replaced += 1
                LOG.debug(f"replaced before playing | {self._pending}")
            self._pending = text
            self._cond.notify()

    def _next_tip(self):
        with self._cond:
            while self._pending is None and not self._closing:
                self._cond.wait()
            text, self._pending = self._pending, None
            return text

    def _run(self):
        try:
            engine = self._open_engine()
        except Exception as e:
            LOG.error(f"speech engine unavailable: {e}")
            with self._cond:
                self._closing = True
                self._pending = None
            return
        try:
            while True:
                text = self._next_tip()
                if text is None:
                    break
                try:
                    engine.say(text)
                    engine.runAndWait()
                    self.spoken += 1
                    LOG.info(f"spoke | {text}")
                except Exception as e:
                    LOG.error(f"speech failed: {e}")
        finally:
            try:
                engine.stop()
            except Exception as e:
                LOG.debug(f"engine stop: {e}")

    def close(self, timeout: float = 3.0):
        with self._cond:
            self._closing = True
            self._cond.notify()
        self._worker.join(timeout=timeout)
        if self._worker.is_alive():
            LOG.warning("speech worker still busy after close")
