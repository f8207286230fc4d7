"""I/O utilities for reading and writing record snapshots."""

from . import readers
from . import writers

__all__ = ["readers", "writers"]
