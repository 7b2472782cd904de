import asyncio
import logging
import threading
from pathlib import Path

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision as mp_vision

from posturecoach.config import VIS_THRESH
from posturecoach.errors import DetectionUnavailable
from posturecoach.vision.pose_utils import to_landmark_set

LOG = logging.getLogger("posturecoach.detector")


class PoseDetector:
    """MediaPipe PoseLandmarker in video mode, loaded on first use."""

    def __init__(self, model_path: Path, min_visibility: float = VIS_THRESH,
                 min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5):
        self.model_path = Path(model_path)
        self.min_visibility = float(min_visibility)
        self._det_conf = float(min_detection_confidence)
        self._trk_conf = float(min_tracking_confidence)
        self._landmarker = None
        self._last_ts = -1
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._landmarker is not None

    def _load_sync(self):
        with self._lock:
            if self._landmarker is not None:
                return
            if not self.model_path.exists():
                raise FileNotFoundError(f"Missing pose model: {self.model_path}")
            options = mp_vision.PoseLandmarkerOptions(
                base_options=mp_python.BaseOptions(model_asset_path=str(self.model_path)),
                running_mode=mp_vision.RunningMode.VIDEO,
                num_poses=1,
                min_pose_detection_confidence=self._det_conf,
                min_tracking_confidence=self._trk_conf)
            self._landmarker = mp_vision.PoseLandmarker.create_from_options(options)
            LOG.info(f"pose model loaded | {self.model_path.name}")

    async def load(self):
        await asyncio.to_thread(self._load_sync)

    def _detect_sync(self, frame: np.ndarray, timestamp_ms: int) -> list:
        with self._lock:
            if self._landmarker is None:
                raise DetectionUnavailable("pose model not loaded")
            # video mode rejects non-increasing timestamps
            ts = max(int(timestamp_ms), self._last_ts + 1)
            self._last_ts = ts
            rgb = np.ascontiguousarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
            res = self._landmarker.detect_for_video(image, ts)
        return [to_landmark_set(person, self.min_visibility) for person in (res.pose_landmarks or [])]

    async def detect(self, frame: np.ndarray, timestamp_ms: int) -> list:
        if frame is None:
            raise DetectionUnavailable("no frame")
        return await asyncio.to_thread(self._detect_sync, frame, timestamp_ms)

    def close(self):
        with self._lock:
            if self._landmarker is not None:
                try:
                    self._landmarker.close()
                except Exception as e:
                    LOG.warning(f"pose model close failed: {e}")
                self._landmarker = None
                self._last_ts = -1
