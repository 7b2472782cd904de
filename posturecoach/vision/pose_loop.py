import asyncio
import logging
import time

from posturecoach.config import FRAME_INTERVAL_S
from posturecoach.errors import DetectionUnavailable
from posturecoach.vision.pose_utils import first_person, tilt_from_result

LOG = logging.getLogger("posturecoach.pose")


async def run_pose_loop(detector, video, on_tilt, interval: float = FRAME_INTERVAL_S, clock=time.monotonic):
    """Per-frame detection loop. Runs until its task is cancelled.

    Skips the frame (without computing) while the detector is still loading
    or the camera has not produced a frame yet. Only the first detected person
    is used. ``on_tilt(tilt, result)`` receives every computed reading.
    """
    load_task = None
    load_failed = False
    try:
        while True:
            if not detector.loaded:
                if load_task is None:
                    load_task = asyncio.ensure_future(detector.load())
                elif load_task.done() and not load_failed and not load_task.cancelled():
                    err = load_task.exception()
                    if err is not None:
                        load_failed = True
                        LOG.error(f"pose detector failed to load: {err}")
                await asyncio.sleep(interval)
                continue
            if not video.has_frame:
                await asyncio.sleep(interval)
                continue
            frame = video.read_frame()
            try:
                people = await detector.detect(frame, int(clock() * 1000))
            except DetectionUnavailable:
                await asyncio.sleep(interval)
                continue
            except Exception:
                LOG.exception("pose detection failed")
                await asyncio.sleep(interval)
                continue
            result = first_person(people)
            on_tilt(tilt_from_result(result), result)
            await asyncio.sleep(interval)
    finally:
        if load_task is not None:
            if not load_task.done():
                load_task.cancel()
            elif not load_task.cancelled() and load_task.exception() is not None and not load_failed:
                LOG.error(f"pose detector failed to load: {load_task.exception()}")
