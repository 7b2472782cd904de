"""
Session lifecycle: acquires camera and microphone, runs the pose and volume
loops plus the elapsed-seconds tick, and tears everything down on stop.

A failed camera or microphone never aborts a session; it just runs with
fewer live signals. Start and stop are serialized, and stop always releases
whatever was acquired.
"""
import asyncio
import logging
import time
from enum import Enum

import numpy as np

from posturecoach.audio.volume import VolumeMeter, run_volume_loop
from posturecoach.config import (
    ELAPSED_TICK_S, FFT_SIZE, FRAME_INTERVAL_S, START_TIP, STOP_TIP)
from posturecoach.errors import MediaAcquisitionError
from posturecoach.vision.pose_loop import run_pose_loop

LOG = logging.getLogger("posturecoach.session")


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


class SessionController:
    def __init__(self, display, dispatcher, acquire_video, acquire_audio, release_fn,
                 detector=None, speech=None, frame_interval: float = FRAME_INTERVAL_S,
                 tick_interval: float = ELAPSED_TICK_S, fft_size: int = FFT_SIZE,
                 clock=time.monotonic):
        self.display = display
        self.dispatcher = dispatcher
        self.detector = detector
        self.speech = speech
        self._acquire_video = acquire_video
        self._acquire_audio = acquire_audio
        self._release = release_fn
        self.frame_interval = float(frame_interval)
        self.tick_interval = float(tick_interval)
        self.fft_size = int(fft_size)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = SessionState.IDLE
        self._clear()

    def _clear(self):
        self._video = None
        self._audio = None
        self._meter = None
        self._pose_task = None
        self._volume_task = None
        self._timer_task = None
        self._elapsed = 0
        self.latest_tilt = np.nan

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def video(self):
        return self._video

    @property
    def audio(self):
        return self._audio

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed

    @property
    def tasks(self) -> list:
        return [t for t in (self._timer_task, self._volume_task, self._pose_task) if t is not None]

    def _now(self) -> float:
        return self._clock() * 1000.0

    def set_voice_enabled(self, enabled: bool):
        self.dispatcher.set_voice(enabled)

    async def start(self) -> bool:
        async with self._lock:
            if self._state is not SessionState.IDLE:
                LOG.info(f"start ignored | state={self._state.value}")
                return False
            self._state = SessionState.STARTING
            self.display.set_status("Starting...")
            self.display.log_event("Session start requested")
            self.dispatcher.announce(START_TIP, self._now())
            try:
                await self._start_sources()
            except BaseException:
                LOG.exception("session start failed; tearing down")
                await self._teardown()
                self.display.set_status("Idle")
                raise
            self._state = SessionState.ACTIVE
            self.display.set_status("Active")
            return True

    async def _start_sources(self):
        self._elapsed = 0
        self.display.show_elapsed(0)
        self._timer_task = asyncio.create_task(self._tick_elapsed(), name="elapsed-tick")

        try:
            self._video = await self._acquire(self._acquire_video)
        except MediaAcquisitionError as e:
            self.display.log_event(f"Camera error: {e}")
        else:
            self.display.log_event("Camera started.")
            if self.detector is not None:
                self._pose_task = asyncio.create_task(
                    run_pose_loop(self.detector, self._video, self._on_tilt,
                                  interval=self.frame_interval, clock=self._clock),
                    name="pose-loop")

        try:
            self._audio = await self._acquire(self._acquire_audio)
        except MediaAcquisitionError as e:
            self.display.log_event(f"Mic error: {e} (needs permission)")
        else:
            self._meter = VolumeMeter(self._audio, fft_size=self.fft_size)
            self._volume_task = asyncio.create_task(
                run_volume_loop(self._meter, self.display, interval=self.frame_interval),
                name="volume-loop")
            self.display.log_event("Mic started.")

    async def _acquire(self, acquire_fn):
        # the device open keeps running in its thread even if start() is cancelled
        fut = asyncio.ensure_future(asyncio.to_thread(acquire_fn))
        try:
            return await asyncio.shield(fut)
        except asyncio.CancelledError:
            fut.add_done_callback(self._release_orphan)
            raise

    def _release_orphan(self, fut):
        if fut.cancelled() or fut.exception() is not None:
            return
        LOG.info("releasing a source that finished opening after start was cancelled")
        self._release(fut.result())

    async def _tick_elapsed(self):
        while True:
            await asyncio.sleep(self.tick_interval)
            self._elapsed += 1
            self.display.show_elapsed(self._elapsed)

    def _on_tilt(self, tilt: float, result=None):
        self.latest_tilt = tilt
        self.display.show_tilt(tilt)
        self.dispatcher.maybe_tip(tilt, self._now())

    async def stop(self) -> bool:
        async with self._lock:
            if self._state is SessionState.IDLE:
                LOG.info("stop ignored | state=idle")
                return False
            self._state = SessionState.STOPPING
            self.display.set_status("Stopping...")
            self.display.log_event("Session stop requested")
            self.dispatcher.announce(STOP_TIP, self._now())
            await self._teardown()
            self.display.set_status("Idle")
            return True

    async def _teardown(self):
        tasks = self.tasks
        for t in tasks:
            t.cancel()
        try:
            if tasks:
                results = await asyncio.gather(*tasks, return_exceptions=True)
                for t, r in zip(tasks, results):
                    if isinstance(r, Exception):
                        LOG.error(f"{t.get_name()} ended with error: {r!r}")
        finally:
            if self._video is not None:
                self._release(self._video)
                self.display.log_event("Camera stopped.")
            if self._audio is not None:
                self._release(self._audio)
                self.display.log_event("Mic stopped.")
            self.dispatcher.reset()
            self._clear()
            self._state = SessionState.IDLE

    async def shutdown(self):
        await self.stop()
        self.dispatcher.close()
        if self.detector is not None:
            self.detector.close()
        if self.speech is not None:
            # lets the end-of-session tip finish playing
            await asyncio.to_thread(self.speech.close)
