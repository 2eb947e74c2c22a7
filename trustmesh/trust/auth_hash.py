"""
GMAK Authentication Hash

    seed  = λ^ * λ²
    value = sin(n * seed) * cos(e_min * seed)
    token = base64(decimal_text(value))[:16]

Pure in (n, e_min, λ^, λ²). Callers normally pass a time- or index-derived
n and a fresh random e_min, which makes tokens unique per call in practice.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from trustmesh.core import constants as C
from trustmesh.core.config import TrustParameters
from trustmesh.core.types import Timestamp
from trustmesh.trust.encoding import encode_number


class AuthHashGenerator:
    """Derives short authentication tokens from challenge values."""

    __slots__ = ("_params", "_rng")

    def __init__(
        self,
        params: Optional[TrustParameters] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._params = params or TrustParameters()
        self._rng = rng or random.Random()

    def value(self, n: int, e_min: float) -> float:
        seed = self._params.seed
        return math.sin(n * seed) * math.cos(e_min * seed)

    def derive(self, n: int, e_min: float) -> str:
        return encode_number(self.value(n, e_min), C.AUTH_HASH_LENGTH)

    def for_session(self, now: Optional[Timestamp] = None) -> str:
        """Token for a top-level session: n is the current time mod 1000."""
        now = now or Timestamp.now()
        return self.derive(now.millis % C.AUTH_HASH_TIME_MODULUS, self._rng.random())

    def for_operation(self, index: int) -> str:
        """Token for the index-th operation of a session."""
        return self.derive(index, self._rng.random())
