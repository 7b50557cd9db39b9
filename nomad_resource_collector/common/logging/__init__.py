"""
Logging configuration for the nomad resource collector.
"""

import logging


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured logging for the collector."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )
    # requests/urllib3 连接日志太多，只保留警告
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)
