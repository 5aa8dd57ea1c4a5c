import logging
import random
from typing import Callable

logger = logging.getLogger(__name__)


class SamplingGate:
    """
    Session-level sampling decision.

    Drawn once when analytics is enabled; every auction of an unsampled
    session is still aggregated but never delivered.
    """

    def __init__(self, rng: Callable[[], float] = random.random):
        self._rng = rng
        self.sampled = True

    def decide(self, percentage: float) -> bool:
        draw = self._rng() * 100
        self.sampled = draw < percentage
        logger.info(f"Session sampling: draw={draw:.2f} rate={percentage}% sampled={self.sampled}")
        return self.sampled

    def reset(self):
        self.sampled = True
