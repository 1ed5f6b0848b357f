"""
Utility functions for idkey

Provides logging setup, clock helpers and the exception taxonomy
"""

import logging
import time
from pathlib import Path
from typing import Optional


# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging for idkey"""
    level = getattr(logging, log_level.upper())

    handlers = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger instance for module"""
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════
# CLOCK
# ═══════════════════════════════════════════════════════════════════

def now_epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


# ═══════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════

class IdKeyError(Exception):
    """Base exception for idkey"""
    pass


class ConfigurationError(IdKeyError):
    """A fetch was requested without an active key identity"""
    pass


class TransportError(IdKeyError, ConnectionError):
    """Remote key service could not be reached or sent an unusable payload"""
    pass


class MalformedTreeError(IdKeyError, ValueError):
    """Lead dataset violates the tree invariants"""
    pass
