"""
Identity Resolution

The external identity provider is an opaque sign-in / sign-out capability
with a live stream of the current identity. When no external identity is
present, records are attributed to a locally generated pseudo-identity:

    "quantum-" + uuid4 + "-" + base64(decimal_text(random() * λ^ * λ²))[:8]

The pseudo-identity is generated once and reused for the resolver's
lifetime, including after an external identity disappears again.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable
from uuid import uuid4

from trustmesh.core import constants as C
from trustmesh.core.config import TrustParameters
from trustmesh.streams.channel import BehaviorSubject
from trustmesh.trust.encoding import encode_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Identity:
    """Identity issued by the external provider."""

    uid: str
    is_anonymous: bool = True


@runtime_checkable
class IdentityProvider(Protocol):
    """Capability consumed from the external identity provider."""

    @property
    def current_identity(self) -> BehaviorSubject[Optional[Identity]]:
        ...

    async def sign_in_anonymously(self) -> Identity:
        ...

    async def sign_out(self) -> None:
        ...


class LocalIdentityProvider:
    """
    In-process identity provider.

    Issues anonymous identities with random uids. Used by the demo and by
    tests; set `fail_sign_in` to simulate a provider outage.
    """

    def __init__(self, fail_sign_in: bool = False) -> None:
        self._current: BehaviorSubject[Optional[Identity]] = BehaviorSubject(None)
        self.fail_sign_in = fail_sign_in
        self.sign_in_calls = 0

    @property
    def current_identity(self) -> BehaviorSubject[Optional[Identity]]:
        return self._current

    async def sign_in_anonymously(self) -> Identity:
        self.sign_in_calls += 1
        if self.fail_sign_in:
            raise ConnectionError("identity provider unreachable")
        identity = Identity(uid=uuid4().hex)
        self._current.publish(identity)
        return identity

    async def sign_out(self) -> None:
        self._current.publish(None)


class IdentityResolver:
    """Chooses the owner string stamped on new records."""

    __slots__ = ("_params", "_rng", "_external", "_local_uid")

    def __init__(
        self,
        params: Optional[TrustParameters] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._params = params or TrustParameters()
        self._rng = rng or random.Random()
        self._external: Optional[Identity] = None
        self._local_uid: Optional[str] = None

    @property
    def external(self) -> Optional[Identity]:
        return self._external

    @property
    def local_uid(self) -> Optional[str]:
        return self._local_uid

    def generate_pseudo_identity(self) -> str:
        entropy = self._rng.random() * self._params.seed
        suffix = encode_number(entropy, C.PSEUDO_IDENTITY_SUFFIX_LENGTH)
        return f"{C.PSEUDO_IDENTITY_PREFIX}{uuid4()}-{suffix}"

    def resolve(self, identity: Optional[Identity]) -> str:
        """Apply an identity-state change and return the effective owner."""
        self._external = identity
        if identity is not None:
            return identity.uid
        if self._local_uid is None:
            self._local_uid = self.generate_pseudo_identity()
            logger.info("Generated local pseudo-identity %s", self._local_uid)
        return self._local_uid

    @property
    def owner(self) -> str:
        """Owner for new records: external uid, else the local one."""
        if self._external is not None:
            return self._external.uid
        if self._local_uid is None:
            self._local_uid = self.generate_pseudo_identity()
        return self._local_uid
