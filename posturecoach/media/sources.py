import logging
import threading
import time

import cv2
import numpy as np

from posturecoach.config import (
    AUDIO_CHANNELS, CAMERA_INDEX, FFT_SIZE, SAMPLE_RATE,
    TARGET_FPS, TARGET_HEIGHT, TARGET_WIDTH)
from posturecoach.errors import MediaAcquisitionError

LOG = logging.getLogger("posturecoach.sources")


def float_to_bytes(x: np.ndarray) -> np.ndarray:
    """[-1, 1] float samples -> unsigned byte samples centered on 128."""
    return np.clip(np.round(128.0 * (1.0 + x)), 0, 255).astype(np.uint8)


class VideoSource:
    """Camera stream with a reader thread that keeps only the latest frame."""

    def __init__(self, cap):
        self._cap = cap
        self._frame = None
        self._lock = threading.Lock()
        self._alive = True
        self.released = False
        self._reader = threading.Thread(target=self._run, name="video-reader", daemon=True)
        self._reader.start()

    def _run(self):
        while self._alive:
            ok, frame = self._cap.read()
            if not ok:
                time.sleep(0.01)
                continue
            with self._lock:
                self._frame = frame

    @property
    def has_frame(self) -> bool:
        return self._frame is not None

    @property
    def resolution(self):
        w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        return w, h

    def read_frame(self):
        with self._lock:
            return None if self._frame is None else self._frame.copy()

    def close(self):
        if self.released:
            return
        self.released = True
        self._alive = False
        self._reader.join(timeout=1.0)
        self._cap.release()
        with self._lock:
            self._frame = None


class AudioSource:
    """Microphone stream feeding a rolling byte time-domain window."""

    def __init__(self, stream, fft_size: int = FFT_SIZE):
        self._stream = stream
        self._window = np.full(int(fft_size), 128, dtype=np.uint8)
        self._lock = threading.Lock()
        self.released = False

    def _callback(self, indata, frames, time_info, status):
        if status:
            LOG.debug(f"audio status: {status}")
        x = indata[:, 0] if indata.ndim > 1 else indata
        b = float_to_bytes(x)
        if b.size == 0:
            return
        n = self._window.size
        with self._lock:
            if b.size >= n:
                self._window[:] = b[-n:]
            else:
                self._window[:-b.size] = self._window[b.size:]
                self._window[-b.size:] = b

    @property
    def fft_size(self) -> int:
        return self._window.size

    def read_time_domain(self, out: np.ndarray) -> np.ndarray:
        with self._lock:
            n = min(out.size, self._window.size)
            out[:n] = self._window[-n:]
        return out

    def close(self):
        if self.released:
            return
        self.released = True
        try:
            self._stream.stop()
        finally:
            self._stream.close()


def acquire_video(camera_index: int = CAMERA_INDEX, width: int = TARGET_WIDTH,
                  height: int = TARGET_HEIGHT, fps: int = TARGET_FPS) -> VideoSource:
    cap = cv2.VideoCapture(camera_index)
    if not cap.isOpened():
        cap.release()
        raise MediaAcquisitionError("camera", f"could not open device {camera_index}")
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    cap.set(cv2.CAP_PROP_FPS, fps)
    src = VideoSource(cap)
    LOG.info(f"camera opened | index={camera_index} res={src.resolution}")
    return src


def acquire_audio(samplerate: int = SAMPLE_RATE, fft_size: int = FFT_SIZE,
                  channels: int = AUDIO_CHANNELS) -> AudioSource:
    try:
        import sounddevice as sd
    except OSError as e:
        # PortAudio shared library missing
        raise MediaAcquisitionError("microphone", str(e)) from e

    src = AudioSource(None, fft_size=fft_size)
    try:
        stream = sd.InputStream(
            samplerate=samplerate,
            channels=channels,
            blocksize=fft_size,
            dtype="float32",
            callback=src._callback)
    except (sd.PortAudioError, ValueError, OSError) as e:
        raise MediaAcquisitionError("microphone", str(e)) from e
    try:
        stream.start()
    except sd.PortAudioError as e:
        stream.close()
        raise MediaAcquisitionError("microphone", str(e)) from e
    src._stream = stream
    LOG.info(f"microphone opened | {samplerate}Hz fft={fft_size}")
    return src


def release(handle) -> None:
    """Stop a source. Safe on None and on handles already released; never raises."""
    if handle is None or getattr(handle, "released", False):
        return
    try:
        handle.close()
    except Exception as e:
        LOG.warning(f"release failed for {type(handle).__name__}: {e}")
