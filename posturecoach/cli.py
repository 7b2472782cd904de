import argparse
import asyncio
import functools
import logging
from pathlib import Path

from posturecoach.coaching.dispatcher import CoachingDispatcher
from posturecoach.config import CAMERA_INDEX, CoachSettings, LOG_DIR, MODEL_PATH, SAMPLE_RATE
from posturecoach.display import ConsoleDisplay
from posturecoach.logs import build_logger
from posturecoach.media import sources
from posturecoach.preview import PreviewWindow
from posturecoach.session import SessionController
from posturecoach.tts import TTS
from posturecoach.vision.detector import PoseDetector

LOG = logging.getLogger("posturecoach.cli")
ESC = 27


def parse_args(argv=None) -> CoachSettings:
    parser = argparse.ArgumentParser(description="Live posture and breathing coach")
    parser.add_argument("--camera", type=int, default=CAMERA_INDEX, help="Camera index")
    parser.add_argument("--model", type=Path, default=MODEL_PATH, help="Pose landmarker .task file")
    parser.add_argument("--samplerate", type=int, default=SAMPLE_RATE, help="Microphone sample rate")
    parser.add_argument("--no-voice", action="store_true", help="Show tips without speaking them")
    parser.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    parser.add_argument("--preview", action="store_true", help="Show the camera preview window")
    parser.add_argument("--log-dir", type=Path, default=LOG_DIR, help="Directory for session logs")
    args = parser.parse_args(argv)
    return CoachSettings(
        camera_index=args.camera,
        model_path=args.model,
        samplerate=args.samplerate,
        voice_enabled=not args.no_voice,
        duration=args.duration,
        preview=args.preview,
        log_dir=args.log_dir)


def build_controller(cfg: CoachSettings, display, speech=None) -> SessionController:
    dispatcher = CoachingDispatcher(
        display,
        speak_fn=speech.say if speech is not None else None,
        voice_enabled=cfg.voice_enabled)
    detector = PoseDetector(cfg.model_path, min_visibility=cfg.min_visibility)
    return SessionController(
        display,
        dispatcher,
        detector=detector,
        acquire_video=functools.partial(
            sources.acquire_video, cfg.camera_index, cfg.width, cfg.height, cfg.fps),
        acquire_audio=functools.partial(sources.acquire_audio, cfg.samplerate, cfg.fft_size),
        release_fn=sources.release,
        speech=speech,
        frame_interval=cfg.frame_interval,
        fft_size=cfg.fft_size)


async def _render_preview(controller: SessionController, window: PreviewWindow, done: asyncio.Event, interval: float):
    while not done.is_set():
        video = controller.video
        frame = video.read_frame() if video is not None else None
        if window.render(frame) == ESC:
            done.set()
        await asyncio.sleep(interval)


async def run(cfg: CoachSettings):
    display = PreviewWindow(size=(cfg.width, cfg.height)) if cfg.preview else ConsoleDisplay()
    speech = TTS(rate=cfg.tts_rate, volume=cfg.tts_volume)
    controller = build_controller(cfg, display, speech)
    done = asyncio.Event()
    preview_task = None
    try:
        await controller.start()
        if cfg.preview:
            preview_task = asyncio.create_task(_render_preview(controller, display, done, cfg.frame_interval))
        if cfg.duration is not None:
            try:
                await asyncio.wait_for(done.wait(), timeout=cfg.duration)
            except asyncio.TimeoutError:
                LOG.info(f"duration reached ({cfg.duration:.0f}s)")
        else:
            await done.wait()
    finally:
        if preview_task is not None:
            preview_task.cancel()
            await asyncio.gather(preview_task, return_exceptions=True)
        await controller.shutdown()
        if cfg.preview:
            display.close()
        LOG.info(f"session time {display.elapsed_text}")


def main(argv=None):
    cfg = parse_args(argv)
    build_logger(cfg.log_dir)
    LOG.info(f"Coaching session | camera={cfg.camera_index} voice={cfg.voice_enabled}")
    try:
        asyncio.run(run(cfg))
    except KeyboardInterrupt:
        LOG.info("interrupted")


if __name__ == "__main__":
    main()
