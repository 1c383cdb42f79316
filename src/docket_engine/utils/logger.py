"""
Logger Utility
Centralized logging configuration and the pipeline's compliance log
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logger(name: str, level: str = "INFO", log_dir: Optional[str] = "logs") -> logging.Logger:
    """
    Setup logger with consistent formatting

    Args:
        name: Logger name
        level: Logging level
        log_dir: Directory for the daily error log; None disables it

    Returns:
        Configured logger
    """

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        error_dir = Path(log_dir)
        error_dir.mkdir(parents=True, exist_ok=True)

        error_handler = logging.FileHandler(
            error_dir / f"errors_{datetime.now().strftime('%Y%m%d')}.log"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        logger.addHandler(error_handler)

    return logger


class AuditLogger:
    """
    Append-only JSON-lines log of pipeline events for compliance review
    """

    def __init__(self, log_dir: str = "logs", log_file: str = "audit.jsonl"):
        """Initialize audit logger"""

        self.log_file = Path(log_dir) / log_file
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, data: dict):
        """
        Log audit event

        Args:
            event: Event type (filing_ingested, deadlines_created, ...)
            data: Event data
        """

        entry = {
            "timestamp": datetime.now().isoformat(),
            "event": event,
            "data": data
        }

        with open(self.log_file, 'a') as f:
            f.write(json.dumps(entry, default=str) + '\n')

    def read_events(self, event: Optional[str] = None) -> list:
        """Entries in write order, optionally filtered by event type"""

        if not self.log_file.exists():
            return []

        with open(self.log_file) as f:
            entries = [json.loads(line) for line in f if line.strip()]

        if event:
            entries = [e for e in entries if e["event"] == event]
        return entries
