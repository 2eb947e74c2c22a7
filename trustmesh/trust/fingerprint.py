"""
PUF Fingerprint Verification

Simulates the QuoreMind calibration circuit: the physical asymmetry of the
board is measured and compared against the reference λ^ within tolerance.

    measured = λ^ + (random() - 0.5) * noise_span      (noise_span = 0.0005)
    valid    = |measured - λ^| < tolerance              (tolerance  = 0.001)

The noise bound (±0.00025) is strictly below the tolerance, so the check
always passes under the reference model. The random draw stands in for a
real physically-unclonable-function measurement.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from trustmesh.core.config import TrustParameters

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FingerprintReading:
    """Outcome of one verification."""

    is_valid: bool
    measured: float
    expected: float

    @property
    def deviation(self) -> float:
        return abs(self.measured - self.expected)


class FingerprintVerifier:
    """
    Compares a simulated measurement against the reference parameter.

    Example:
        verifier = FingerprintVerifier(TrustParameters())
        reading = verifier.verify()
        if not reading.is_valid:
            raise IntegrityFailure.fingerprint_mismatch(...)
    """

    __slots__ = ("_params", "_rng", "_last_reading")

    def __init__(
        self,
        params: Optional[TrustParameters] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._params = params or TrustParameters()
        self._rng = rng or random.Random()
        self._last_reading: Optional[FingerprintReading] = None

    @property
    def params(self) -> TrustParameters:
        return self._params

    @property
    def last_reading(self) -> Optional[FingerprintReading]:
        """Most recent verification, None before the first check."""
        return self._last_reading

    def measure(self) -> float:
        """Simulated physical asymmetry measurement."""
        noise = (self._rng.random() - 0.5) * self._params.noise_span
        return self._params.lambda_alpha + noise

    def verify(self) -> FingerprintReading:
        """Run one hardware self-test."""
        expected = self._params.lambda_alpha
        measured = self.measure()
        is_valid = abs(measured - expected) < self._params.tolerance

        logger.info("Executing hardware self-test, asymmetry measured: %s", measured)
        if is_valid:
            logger.info("Verification successful, hardware is genuine")
        else:
            logger.warning(
                "Hardware fingerprint mismatch: expected %s, measured %s",
                expected,
                measured,
            )

        reading = FingerprintReading(is_valid=is_valid, measured=measured, expected=expected)
        self._last_reading = reading
        return reading
