"""Fixed-capacity sliding window of recent emotion samples."""

from __future__ import annotations

from collections import deque
from typing import Iterator

from adaptive_bls.models import EmotionSample

DEFAULT_CAPACITY = 30


class EmotionHistory:
    """FIFO buffer holding the most recent *capacity* samples, oldest first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._samples: deque[EmotionSample] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def push(self, sample: EmotionSample) -> None:
        """Append *sample*; the oldest one is evicted once capacity is exceeded."""
        self._samples.append(sample)

    def snapshot(self) -> list[EmotionSample]:
        """Return the current contents in arrival order."""
        return list(self._samples)

    def recent(self, n: int) -> list[EmotionSample]:
        """Return up to the *n* most recent samples, oldest first."""
        if n <= 0:
            return []
        return list(self._samples)[-n:]

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[EmotionSample]:
        return iter(list(self._samples))
