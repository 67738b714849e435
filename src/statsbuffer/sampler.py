"""
Client-side sampling.

Decides whether a single observation is recorded at all, before it is
turned into an event and handed to the collector.
"""

import random
import threading
from typing import Optional


class Sampler:
    """Probabilistic gate shared by all producers of a client."""

    def __init__(self, seed: Optional[int] = None):
        """Initialize the sampler."""
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def should_fire(self, rate: float) -> bool:
        """Return True if an observation sampled at `rate` should be kept."""
        if rate >= 1.0:
            return True
        if rate <= 0.0:
            return False
        with self._lock:
            return self._rng.random() < rate

