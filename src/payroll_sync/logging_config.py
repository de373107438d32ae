"""
Logging setup driven by the [logging] section of the sync configuration
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Configure the package logger

    Args:
        settings: Logging section with optional 'level', 'format' and 'log_file'

    Returns:
        The configured 'payroll_sync' logger
    """
    settings = settings or {}
    level_name = str(settings.get('level', 'INFO')).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {level_name}")

    formatter = logging.Formatter(settings.get('format', DEFAULT_FORMAT))
    logger = logging.getLogger('payroll_sync')
    logger.setLevel(level)

    # Reconfiguring replaces handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    log_file = settings.get('log_file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
