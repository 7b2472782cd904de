from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

pytest.importorskip("cv2")
pytest.importorskip("mediapipe")

from posturecoach.errors import DetectionUnavailable
from posturecoach.vision import detector as detector_mod
from posturecoach.vision.detector import PoseDetector
from posturecoach.vision.pose_utils import NUM_LANDMARKS, LandmarkSlot

FRAME = np.zeros((48, 64, 3), dtype=np.uint8)


def _pose(low_visibility=()):
    pts = []
    for i in range(NUM_LANDMARKS):
        vis = 0.2 if i in low_visibility else 0.9
        pts.append(SimpleNamespace(x=0.5, y=i / NUM_LANDMARKS, z=0.0, visibility=vis))
    return pts


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "pose_landmarker_lite.task"
    path.write_bytes(b"model")
    return path


@pytest.fixture
def landmarker():
    fake = MagicMock()
    fake.detect_for_video.return_value = SimpleNamespace(pose_landmarks=[_pose()])
    with patch.object(detector_mod.mp_vision.PoseLandmarker, "create_from_options",
                      return_value=fake) as create:
        fake.create = create
        yield fake


def _timestamps(fake):
    return [c.args[1] for c in fake.detect_for_video.call_args_list]


@pytest.mark.asyncio
async def test_detect_before_load_is_unavailable(model_file, landmarker):
    det = PoseDetector(model_file)
    assert not det.loaded
    with pytest.raises(DetectionUnavailable):
        await det.detect(FRAME, 10)
    landmarker.detect_for_video.assert_not_called()


@pytest.mark.asyncio
async def test_detect_without_frame_is_unavailable(model_file, landmarker):
    det = PoseDetector(model_file)
    await det.load()
    with pytest.raises(DetectionUnavailable):
        await det.detect(None, 10)


@pytest.mark.asyncio
async def test_load_missing_model_raises(tmp_path, landmarker):
    det = PoseDetector(tmp_path / "nope.task")
    with pytest.raises(FileNotFoundError):
        await det.load()
    assert not det.loaded
    landmarker.create.assert_not_called()


@pytest.mark.asyncio
async def test_load_is_idempotent(model_file, landmarker):
    det = PoseDetector(model_file)
    await det.load()
    await det.load()
    assert det.loaded
    landmarker.create.assert_called_once()


@pytest.mark.asyncio
async def test_timestamps_reach_model_strictly_increasing(model_file, landmarker):
    det = PoseDetector(model_file)
    await det.load()
    for ts in (100, 100, 50, 200):
        await det.detect(FRAME, ts)
    assert _timestamps(landmarker) == [100, 101, 102, 200]


@pytest.mark.asyncio
async def test_low_visibility_points_become_missing(model_file, landmarker):
    landmarker.detect_for_video.return_value = SimpleNamespace(
        pose_landmarks=[_pose(low_visibility={int(LandmarkSlot.LEFT_HIP)})])
    det = PoseDetector(model_file, min_visibility=0.5)
    await det.load()
    people = await det.detect(FRAME, 1)
    assert len(people) == 1
    lm = people[0]
    assert len(lm) == NUM_LANDMARKS
    assert lm[LandmarkSlot.LEFT_HIP] is None
    assert lm[LandmarkSlot.RIGHT_HIP].visibility == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_no_pose_gives_empty_list(model_file, landmarker):
    landmarker.detect_for_video.return_value = SimpleNamespace(pose_landmarks=[])
    det = PoseDetector(model_file)
    await det.load()
    assert await det.detect(FRAME, 1) == []


@pytest.mark.asyncio
async def test_close_releases_model_and_restarts_timestamps(model_file, landmarker):
    det = PoseDetector(model_file)
    await det.load()
    await det.detect(FRAME, 500)
    det.close()
    assert not det.loaded
    landmarker.close.assert_called_once()
    with pytest.raises(DetectionUnavailable):
        await det.detect(FRAME, 600)
    await det.load()
    await det.detect(FRAME, 5)
    assert _timestamps(landmarker) == [500, 5]
    det.close()
    det.close()
    assert landmarker.close.call_count == 2
