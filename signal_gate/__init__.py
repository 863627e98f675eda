#!filepath: signal_gate/__init__.py

from .utils.logger import Logging, logs

__version__ = "0.1.0"

__all__ = [
    "logs", "Logging",
]
