"""
Utilities for reproducible random sampling.
"""

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


def get_rng(seed: Optional[int] = None) -> np.random.Generator:
    """
    Get a numpy Generator for random sampling.

    Args:
        seed: Seed for the generator. None draws fresh OS entropy, so sampling
            differs between processes; tests pass a fixed seed.

    Returns:
        numpy.random.Generator
    """
    if seed is not None:
        logger.info(f"Using fixed random seed {seed}")
    return np.random.default_rng(seed)
