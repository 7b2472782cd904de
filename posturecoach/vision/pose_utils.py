from __future__ import annotations
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Sequence, Union

import numpy as np

NUM_LANDMARKS = 33


class LandmarkSlot(IntEnum):
    NOSE = 0
    LEFT_EAR = 7
    RIGHT_EAR = 8
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


TORSO_SLOTS = (
    LandmarkSlot.LEFT_SHOULDER, LandmarkSlot.RIGHT_SHOULDER,
    LandmarkSlot.LEFT_HIP, LandmarkSlot.RIGHT_HIP)


@dataclass(frozen=True)
class LandmarkPoint:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0


# one entry per slot; None marks a slot the detector could not place
LandmarkSet = Sequence[Optional[LandmarkPoint]]


@dataclass(frozen=True)
class NoPerson:
    pass


@dataclass(frozen=True)
class Person:
    landmarks: LandmarkSet


DetectionResult = Union[NoPerson, Person]


def empty_landmarks() -> list:
    return [None] * NUM_LANDMARKS


def landmark_set(points: dict) -> list:
    """Build a full-size LandmarkSet from ``{slot: (x, y)}`` or ``{slot: LandmarkPoint}``."""
    lm = empty_landmarks()
    for slot, pt in points.items():
        if pt is not None and not isinstance(pt, LandmarkPoint):
            pt = LandmarkPoint(*pt)
        lm[int(slot)] = pt
    return lm


def to_landmark_set(landmarks, min_visibility: float = 0.0) -> list:
    """Convert detector landmarks (anything with x, y, z, visibility) to a LandmarkSet.

    Points less visible than ``min_visibility`` become missing slots.
    """
    out = []
    for pt in landmarks:
        vis = getattr(pt, "visibility", None)
        vis = 1.0 if vis is None else float(vis)
        if vis < min_visibility:
            out.append(None)
            continue
        out.append(LandmarkPoint(float(pt.x), float(pt.y), float(getattr(pt, "z", 0.0) or 0.0), vis))
    return out


def first_person(people) -> DetectionResult:
    if not people:
        return NoPerson()
    return Person(people[0])


def get_point(lm: LandmarkSet, slot: LandmarkSlot) -> Optional[LandmarkPoint]:
    idx = int(slot)
    if lm is None or idx >= len(lm):
        return None
    return lm[idx]


def _valid(v) -> bool:
    return v is not None and not (isinstance(v, float) and math.isnan(v))


def midpoint(a: LandmarkPoint, b: LandmarkPoint) -> np.ndarray:
    return np.array([(a.x + b.x) / 2.0, (a.y + b.y) / 2.0], dtype=np.float64)


def compute_torso_tilt(lm: Optional[LandmarkSet]) -> float:
    """Deviation of the shoulder->hip vector from vertical, in degrees.

    Image space is y-down, so an upright torso has the hip midpoint straight
    below the shoulder midpoint and reads 0.0. Left and right lean read the
    same. Returns nan when any shoulder or hip slot is missing.
    """
    if lm is None:
        return np.nan
    pts = [get_point(lm, s) for s in TORSO_SLOTS]
    if any(p is None for p in pts):
        return np.nan
    ls, rs, lh, rh = pts
    v = midpoint(lh, rh) - midpoint(ls, rs)
    ang = abs(math.degrees(math.atan2(float(v[0]), float(v[1]))))
    return round(ang, 1)


def tilt_from_result(result: DetectionResult) -> float:
    if isinstance(result, Person):
        return compute_torso_tilt(result.landmarks)
    return np.nan


def format_tilt(tilt: float, placeholder: str = "--") -> str:
    if not _valid(tilt):
        return placeholder
    return f"{tilt:.1f}"
