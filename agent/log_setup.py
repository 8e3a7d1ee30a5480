"""Process-wide logging setup."""

import logging
import os


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_FILENAME = "overmind.log"


def configure_logging(log_dir: str, level: str = "INFO", console: bool = True) -> logging.Logger:
    """Attach a file handler (and optionally a console handler) to the root logger once."""
    os.makedirs(log_dir, exist_ok=True)
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    log_path = os.path.abspath(os.path.join(log_dir, LOG_FILENAME))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    has_file = any(
        isinstance(h, logging.FileHandler) and h.baseFilename == log_path
        for h in root.handlers
    )
    if not has_file:
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(formatter)
        root.addHandler(handler)

    has_console = any(type(h) is logging.StreamHandler for h in root.handlers)
    if console and not has_console:
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        root.addHandler(stream)

    # aiohttp access logs are noisy at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    return root
