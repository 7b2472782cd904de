from dataclasses import dataclass
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
LOG_DIR = ROOT / "outputs" / "session_logs"

# posture thresholds (degrees)
TILT_TIP_DEG = 18.0
TILT_GOOD_DEG = 10.0

TIP_COOLDOWN_MS = 6000
TIP_DISPLAY_MS = 4000

START_TIP = "Sit upright and breathe deeply."
STOP_TIP = "Session ended. Great job!"
POSTURE_TIP = "Straighten your back."

FRAME_INTERVAL_S = 1.0 / 30
ELAPSED_TICK_S = 1.0

# audio analysis window
FFT_SIZE = 1024
SAMPLE_RATE = 16000
AUDIO_CHANNELS = 1

CAMERA_INDEX = 0
TARGET_WIDTH = 640
TARGET_HEIGHT = 480
TARGET_FPS = 30

VIS_THRESH = 0.5
MODEL_PATH = ROOT / "models" / "pose_landmarker_lite.task"

TTS_RATE = 170
TTS_VOLUME = 1.0

EVENT_LOG_MAX = 200


@dataclass
class CoachSettings:
    camera_index: int = CAMERA_INDEX
    width: int = TARGET_WIDTH
    height: int = TARGET_HEIGHT
    fps: int = TARGET_FPS
    samplerate: int = SAMPLE_RATE
    fft_size: int = FFT_SIZE
    model_path: Path = MODEL_PATH
    min_visibility: float = VIS_THRESH
    voice_enabled: bool = True
    tts_rate: int = TTS_RATE
    tts_volume: float = TTS_VOLUME
    frame_interval: float = FRAME_INTERVAL_S
    preview: bool = False
    duration: float | None = None
    log_dir: Path | None = None
