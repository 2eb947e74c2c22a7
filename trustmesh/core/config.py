"""
Configuration Management for the Session Trust Mesh

Provides validated configuration with sensible defaults.
Supports environment variable overrides (prefix TRUSTMESH_).

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from trustmesh.core.types import Result, Ok, Err
from trustmesh.core import constants as C
from trustmesh.storage.config import RedisConfig


@dataclass(frozen=True)
class TrustParameters:
    """
    Fixed trust parameters of the simulated hardware.

    Passed explicitly to the fingerprint verifier and hash generator.
    """

    lambda_alpha: float = C.LAMBDA_ALPHA
    lambda_beta: float = C.LAMBDA_BETA
    tolerance: float = C.FINGERPRINT_TOLERANCE
    noise_span: float = C.FINGERPRINT_NOISE_SPAN

    @property
    def seed(self) -> float:
        """Product used by the hash and pseudo-identity derivations."""
        return self.lambda_alpha * self.lambda_beta

    @property
    def noise_bound(self) -> float:
        """Largest absolute deviation the simulated measurement can produce."""
        return self.noise_span / 2


@dataclass(frozen=True)
class ReadinessConfig:
    """Readiness count retry schedule."""

    initial_delay_ms: int = C.READINESS_INITIAL_DELAY_MS
    max_delay_ms: int = C.READINESS_MAX_DELAY_MS
    max_retries: int = C.READINESS_MAX_RETRIES


@dataclass(frozen=True)
class StoreConfig:
    """Document store selection."""

    backend: str = "memory"  # "memory" or "redis"
    collection: str = C.DEFAULT_COLLECTION
    project_id: str = ""
    redis: RedisConfig = field(default_factory=RedisConfig)

    @property
    def console_url(self) -> str:
        """Where operators check store-side access rules."""
        return f"https://console.firebase.google.com/project/{self.project_id}/firestore"


@dataclass(frozen=True)
class NotificationConfig:
    action_label: str = C.NOTIFICATION_ACTION_LABEL
    default_duration_ms: int = C.NOTIFICATION_DEFAULT_MS


@dataclass(frozen=True)
class ProtocolConfig:
    """Protocol suggestion endpoint configuration."""

    model: str = C.PROTOCOL_DEFAULT_MODEL
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_retries: int = C.PROTOCOL_MAX_RETRIES


@dataclass(frozen=True)
class ObservabilityConfig:
    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class TrustMeshConfig:
    """Root configuration for the trust mesh."""

    trust: TrustParameters = field(default_factory=TrustParameters)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[TrustMeshConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with TRUSTMESH_.
        Example: TRUSTMESH_STORE_BACKEND, TRUSTMESH_LAMBDA_ALPHA
        Redis connection settings use RedisConfig.from_env("TRUSTMESH_REDIS").
        """
        try:
            trust = TrustParameters(
                lambda_alpha=float(os.getenv("TRUSTMESH_LAMBDA_ALPHA", str(C.LAMBDA_ALPHA))),
                lambda_beta=float(os.getenv("TRUSTMESH_LAMBDA_BETA", str(C.LAMBDA_BETA))),
                tolerance=float(os.getenv("TRUSTMESH_TOLERANCE", str(C.FINGERPRINT_TOLERANCE))),
            )

            readiness = ReadinessConfig(
                initial_delay_ms=int(os.getenv(
                    "TRUSTMESH_READINESS_INITIAL_MS", str(C.READINESS_INITIAL_DELAY_MS))),
                max_delay_ms=int(os.getenv(
                    "TRUSTMESH_READINESS_MAX_MS", str(C.READINESS_MAX_DELAY_MS))),
                max_retries=int(os.getenv(
                    "TRUSTMESH_READINESS_MAX_RETRIES", str(C.READINESS_MAX_RETRIES))),
            )

            store = StoreConfig(
                backend=os.getenv("TRUSTMESH_STORE_BACKEND", "memory").lower(),
                collection=os.getenv("TRUSTMESH_COLLECTION", C.DEFAULT_COLLECTION),
                project_id=os.getenv("TRUSTMESH_PROJECT_ID", ""),
                redis=RedisConfig.from_env("TRUSTMESH_REDIS"),
            )

            protocol = ProtocolConfig(
                model=os.getenv("TRUSTMESH_PROTOCOL_MODEL", C.PROTOCOL_DEFAULT_MODEL),
                api_key=os.getenv("OPENAI_API_KEY") or None,
                base_url=os.getenv("TRUSTMESH_PROTOCOL_BASE_URL") or None,
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("TRUSTMESH_LOG_LEVEL", "INFO").upper(),
                log_json=os.getenv("TRUSTMESH_LOG_JSON", "true").lower() in ("true", "1", "yes"),
            )

            return Ok(cls(
                trust=trust,
                readiness=readiness,
                store=store,
                protocol=protocol,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.trust.tolerance <= 0:
            return Err("Fingerprint tolerance must be > 0")
        if self.trust.noise_bound >= self.trust.tolerance:
            return Err(
                f"Noise bound {self.trust.noise_bound} must stay below "
                f"tolerance {self.trust.tolerance}"
            )
        if self.readiness.initial_delay_ms <= 0:
            return Err("Readiness initial delay must be > 0")
        if self.readiness.max_delay_ms < self.readiness.initial_delay_ms:
            return Err("Readiness max delay cannot be below the initial delay")
        if self.readiness.max_retries < 0:
            return Err("Readiness max retries must be >= 0")
        if self.store.backend not in ("memory", "redis"):
            return Err(f"Unknown store backend: {self.store.backend}")
        return Ok(None)
