import asyncio

import numpy as np
import pytest

from posturecoach.coaching.dispatcher import CoachingDispatcher
from posturecoach.display import ConsoleDisplay
from posturecoach.errors import DetectionUnavailable, MediaAcquisitionError
from posturecoach.session import SessionController
from posturecoach.vision.pose_utils import LandmarkSlot, landmark_set

FAST = 0.001


def torso(ls, rs, lh, rh):
    return landmark_set({
        LandmarkSlot.LEFT_SHOULDER: ls,
        LandmarkSlot.RIGHT_SHOULDER: rs,
        LandmarkSlot.LEFT_HIP: lh,
        LandmarkSlot.RIGHT_HIP: rh,
    })


UPRIGHT = torso((0.45, 0.3), (0.55, 0.3), (0.45, 0.7), (0.55, 0.7))
LEANING = torso((0.25, 0.3), (0.35, 0.3), (0.45, 0.7), (0.55, 0.7))


class FakeVideo:
    def __init__(self, has_frame=True):
        self.has_frame = has_frame
        self.released = False
        self.reads = 0

    def read_frame(self):
        assert not self.released, "frame read after release"
        self.reads += 1
        return np.zeros((4, 4, 3), dtype=np.uint8)

    def close(self):
        self.released = True


class FakeAudio:
    def __init__(self, level=128):
        self.level = level
        self.released = False

    def read_time_domain(self, out):
        assert not self.released, "audio read after release"
        out[:] = self.level
        return out

    def close(self):
        self.released = True


class FakeDetector:
    def __init__(self, people=None, loaded=True):
        self.people = [UPRIGHT] if people is None else people
        self._loaded = loaded
        self.load_calls = 0
        self.detect_calls = []
        self.closed = False

    @property
    def loaded(self):
        return self._loaded

    async def load(self):
        self.load_calls += 1
        self._loaded = True

    async def detect(self, frame, timestamp_ms):
        if not self._loaded:
            raise DetectionUnavailable("not loaded")
        self.detect_calls.append(timestamp_ms)
        await asyncio.sleep(0)
        return self.people

    def close(self):
        self.closed = True


class Sources:
    """Records every handle it hands out so tests can check release."""

    def __init__(self, video_ok=True, audio_ok=True, level=128):
        self.video_ok = video_ok
        self.audio_ok = audio_ok
        self.level = level
        self.videos = []
        self.audios = []
        self.released = []

    def acquire_video(self):
        if not self.video_ok:
            raise MediaAcquisitionError("camera", "permission denied")
        v = FakeVideo()
        self.videos.append(v)
        return v

    def acquire_audio(self):
        if not self.audio_ok:
            raise MediaAcquisitionError("microphone", "no device")
        a = FakeAudio(self.level)
        self.audios.append(a)
        return a

    def release(self, handle):
        if handle is None or handle.released:
            return
        handle.close()
        self.released.append(handle)


@pytest.fixture
def display():
    return ConsoleDisplay()


@pytest.fixture
def spoken():
    return []


@pytest.fixture
def dispatcher(display, spoken):
    return CoachingDispatcher(display, speak_fn=spoken.append, voice_enabled=True)


@pytest.fixture
def make_controller(display, dispatcher):
    def _make(sources=None, detector=None, **kw):
        sources = sources or Sources()
        frame_interval = kw.pop("frame_interval", FAST)
        tick_interval = kw.pop("tick_interval", 1.0)
        ctrl = SessionController(
            display, dispatcher,
            acquire_video=sources.acquire_video,
            acquire_audio=sources.acquire_audio,
            release_fn=sources.release,
            detector=detector,
            frame_interval=frame_interval,
            tick_interval=tick_interval,
            **kw)
        ctrl.sources = sources
        return ctrl
    return _make
