import logging
import sys
import time
from pathlib import Path

FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATEFMT = "%H:%M:%S"


def build_logger(log_dir: Path | None = None, level: int = logging.INFO) -> logging.Logger:
    """Configure the ``posturecoach`` logger once; child loggers inherit its handlers."""
    logger = logging.getLogger("posturecoach")
    logger.setLevel(level)
    logger.propagate = False
    if logger.handlers:
        return logger
    fmt = logging.Formatter(FORMAT, DATEFMT)
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    logger.addHandler(sh)
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"live_{int(time.time())}.log"
        fh = logging.FileHandler(str(log_path), encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
        logger.info(f"logging to {log_path}")
    return logger
