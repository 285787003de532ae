import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


def setup_logging(
    *,
    level: str = "INFO",
    logger_name: str = "tracker",
    file_path: Optional[str] = None,
    max_bytes: int = 1_000_000,
    backups: int = 3,
) -> logging.Logger:
    """
    Настраивает логгер приложения.
    - всегда добавляет StreamHandler;
    - если file_path задан, добавляет RotatingFileHandler.
    Повторный вызов заменяет обработчики, а не дублирует их.
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if file_path:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(file_path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger
