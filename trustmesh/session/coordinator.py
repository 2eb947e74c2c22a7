"""
Session Trust Coordinator

Application-level orchestration of the trust chain:

    identity change ──▶ owner resolution ──▶ ReadinessLoader.start()
    bootstrap       ──▶ fingerprint gate ──▶ anonymous sign-in
    mutations       ──▶ SessionStore (gated) ──▶ report + raise on failure

Read paths degrade to empty results after reporting; write paths re-raise
after reporting so callers can react.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import replace
from datetime import timezone
from typing import Callable, List, Optional, Sequence

from trustmesh.alerts.reporter import ErrorReporter, NotificationSink
from trustmesh.core.config import ReadinessConfig, TrustMeshConfig, TrustParameters
from trustmesh.core.errors import IntegrityFailure, ProtocolGenerationFailure, TrustMeshError
from trustmesh.core.types import Timestamp
from trustmesh.observability.logging import StructuredLogger
from trustmesh.protocol.generator import GeneratedSecurityProtocol, ProtocolFile, ProtocolGenerator
from trustmesh.reliability.retry import Sleeper
from trustmesh.session.loader import ReadinessLoader, ReadinessState
from trustmesh.session.models import (
    Operation,
    OperationDraft,
    Record,
    SecurityLevel,
    Session,
    SessionDraft,
    SessionWithOperations,
)
from trustmesh.session.store import SessionStore
from trustmesh.storage.protocols import DocumentStore, WatchHandle
from trustmesh.streams.channel import BehaviorSubject, Subscription
from trustmesh.trust.auth_hash import AuthHashGenerator
from trustmesh.trust.encoding import number_text
from trustmesh.trust.fingerprint import FingerprintVerifier
from trustmesh.trust.identity import Identity, IdentityProvider, IdentityResolver

logger = StructuredLogger(__name__)

REPORT_TEMPLATE = """
--- DOCSAFER QUANTUM SECURITY REPORT ---
Active Quantum Sessions: {authenticated}
Total Sessions: {total}
Hardware λ^ Parameter: {lambda_alpha}
Hardware λ² Parameter: {lambda_beta}
System Status: {status}
Generated: {generated}
--- END REPORT ---
"""


class SessionTrustCoordinator:
    """
    Owns the session list and readiness channels.

    Example:
        coordinator = SessionTrustCoordinator.from_config(config, InMemoryDocumentStore(),
                                                          LocalIdentityProvider())
        await coordinator.start()
        session_id = await coordinator.create_session_with_operations(draft, ops)
        print(await coordinator.generate_report())
    """

    def __init__(
        self,
        store: SessionStore,
        identity: IdentityProvider,
        reporter: ErrorReporter,
        verifier: FingerprintVerifier,
        resolver: IdentityResolver,
        params: Optional[TrustParameters] = None,
        readiness: Optional[ReadinessConfig] = None,
        protocol: Optional[ProtocolGenerator] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], Timestamp] = Timestamp.now,
    ) -> None:
        self._store = store
        self._identity = identity
        self._reporter = reporter
        self._verifier = verifier
        self._resolver = resolver
        self._params = params or verifier.params
        self._protocol = protocol
        self._clock = clock

        self.sessions: BehaviorSubject[List[Session]] = BehaviorSubject([])
        self.ready: BehaviorSubject[bool] = BehaviorSubject(False)
        self._loader = ReadinessLoader(
            store, self.sessions, self.ready, reporter, config=readiness, sleep=sleep,
        )
        self._identity_subscription: Optional[Subscription] = None

    @classmethod
    def from_config(
        cls,
        config: TrustMeshConfig,
        documents: DocumentStore,
        identity: IdentityProvider,
        sink: Optional[NotificationSink] = None,
        rng: Optional[random.Random] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> SessionTrustCoordinator:
        """Wire every collaborator from configuration."""
        rng = rng or random.Random()
        verifier = FingerprintVerifier(config.trust, rng)
        store = SessionStore(
            documents,
            verifier,
            AuthHashGenerator(config.trust, rng),
            collection=config.store.collection,
            params=config.trust,
        )
        reporter = ErrorReporter(sink, config.notifications, console_url=config.store.console_url)
        return cls(
            store=store,
            identity=identity,
            reporter=reporter,
            verifier=verifier,
            resolver=IdentityResolver(config.trust, rng),
            params=config.trust,
            readiness=config.readiness,
            protocol=ProtocolGenerator(config.protocol),
            sleep=sleep,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def reporter(self) -> ErrorReporter:
        return self._reporter

    @property
    def loader(self) -> ReadinessLoader:
        return self._loader

    @property
    def owner(self) -> str:
        return self._resolver.owner

    @property
    def local_uid(self) -> Optional[str]:
        return self._resolver.local_uid

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _on_identity(self, identity: Optional[Identity]) -> None:
        owner = self._resolver.resolve(identity)
        logger.info(
            "Identity changed",
            owner=owner,
            external=identity is not None,
        )
        self._loader.start()

    async def start(self) -> None:
        """
        Bootstrap: watch identity changes, run the fingerprint gate, sign in.

        Raises:
            IntegrityFailure: the gate failed; sign-in is not attempted
        """
        if self._identity_subscription is None:
            self._identity_subscription = self._identity.current_identity.subscribe(self._on_identity)

        reading = self._verifier.verify()
        if not reading.is_valid:
            error = IntegrityFailure.fingerprint_mismatch(
                "bootstrap", reading.expected, reading.measured,
            )
            self._reporter.report(error)
            raise error

        try:
            await self._identity.sign_in_anonymously()
        except Exception as e:
            logger.error("Anonymous sign-in failed; continuing with local identity", reason=str(e))

    async def stop(self) -> None:
        if self._identity_subscription is not None:
            self._identity_subscription.unsubscribe()
            self._identity_subscription = None
        await self._loader.stop()

    async def logout(self) -> None:
        try:
            await self._identity.sign_out()
        except Exception as e:
            logger.error("Sign out failed", reason=str(e))
            return
        logger.info("Quantum session terminated")
        self.sessions.publish([])

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _fail(self, error: TrustMeshError, user_message: str) -> TrustMeshError:
        self._reporter.report(error, user_message)
        return error

    async def create_session_with_operations(
        self,
        draft: SessionDraft,
        operations: Sequence[OperationDraft] = (),
    ) -> str:
        """
        Create a session and its operations, attributed to the current owner.

        Raises:
            TrustMeshError: first failed write; earlier writes stay committed
        """
        owner = self._resolver.owner
        failure_message = "Error adding quantum session and operations to secure storage"

        created = await self._store.create_session(draft, owner)
        if created.is_err():
            raise self._fail(created.error, failure_message)
        session_id = created.unwrap()

        if operations:
            ops = await self._store.create_operations(session_id, operations, owner)
            if ops.is_err():
                raise self._fail(ops.error, failure_message)

        # Zero-count load skipped the live stream; reload to surface the new session
        if self._loader.state is ReadinessState.READY and not self._loader.streaming:
            self._loader.start()

        return session_id

    async def create_from_protocol(self, protocol: GeneratedSecurityProtocol) -> str:
        draft, operations = protocol.to_drafts()
        return await self.create_session_with_operations(draft, operations)

    async def update_session(self, record: Record) -> float:
        """
        Gated merge update. Returns the asymmetry measurement stamped.

        Raises:
            IntegrityFailure: gate failed, store untouched
            TrustMeshError: store write failed
        """
        result = await self._store.update_session(record)
        if result.is_err():
            raise self._fail(result.error, "Error updating quantum session")
        return result.unwrap()

    async def delete_session(self, session_id: str) -> int:
        """
        Gated cascading delete. Returns the number of operations removed.

        Raises:
            IntegrityFailure: gate failed, store untouched
            TrustMeshError: a delete failed; earlier deletes stay applied
        """
        result = await self._store.delete_session_cascade(session_id)
        if result.is_err():
            raise self._fail(result.error, "Failed to securely delete quantum session")
        return result.unwrap()

    async def set_session_authentication(
        self,
        bundle: SessionWithOperations,
        authenticated: bool,
    ) -> SessionWithOperations:
        """Apply one authentication flag to a session and all its operations."""
        updated = bundle.with_authentication(authenticated)
        for operation in updated.operations:
            await self.update_session(operation)
        await self.update_session(updated.session)

        if authenticated:
            logger.info(
                "Session fully authenticated",
                session=updated.session.session_name,
                lambda_alpha=updated.session.lambda_alpha,
                operations=updated.operation_count,
            )
        else:
            logger.info("Session deauthenticated", session=updated.session.session_name)
        return updated

    async def toggle_operation_authentication(self, operation: Operation) -> Operation:
        toggled = operation.with_authentication(not operation.authenticated)
        await self.update_session(toggled)
        logger.info(
            "Operation authentication toggled",
            operation=toggled.session_name,
            authenticated=toggled.authenticated,
            auth_hash=toggled.auth_hash,
        )
        return toggled

    async def change_security_level(self, session: Session, level: SecurityLevel) -> Session:
        changed = replace(session, security_level=level)
        await self.update_session(changed)
        logger.info(
            "Security level changed",
            session=session.session_name,
            old_level=session.security_level.value,
            new_level=level.value,
        )
        return changed

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def verify_integrity(self) -> bool:
        return self._verifier.verify().is_valid

    async def operations_stream(
        self,
        parent_id: str,
        listener: Callable[[List[Operation]], None],
    ) -> Optional[WatchHandle]:
        """Live operations of a session; errors are reported and yield []."""

        def _on_error(error: TrustMeshError) -> None:
            self._reporter.report(error)
            listener([])

        result = await self._store.stream_operations(parent_id, listener, _on_error)
        if result.is_err():
            _on_error(result.error)
            return None
        return result.unwrap()

    async def generate_report(self) -> str:
        listed = await self._store.list_sessions()
        if listed.is_err():
            self._reporter.report(listed.error)
            sessions: List[Session] = []
        else:
            sessions = listed.unwrap()

        reading = self._verifier.verify()
        generated = self._clock().to_datetime().astimezone(timezone.utc)
        return REPORT_TEMPLATE.format(
            authenticated=sum(1 for s in sessions if s.authenticated),
            total=len(sessions),
            lambda_alpha=number_text(self._params.lambda_alpha),
            lambda_beta=number_text(self._params.lambda_beta),
            status="SECURE" if reading.is_valid else "COMPROMISED",
            generated=generated.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        )

    async def generate_protocol(
        self,
        prompt: str,
        file: Optional[ProtocolFile] = None,
    ) -> GeneratedSecurityProtocol:
        """
        Raises:
            ProtocolGenerationFailure: after reporting it
        """
        if self._protocol is None:
            raise self._fail(
                ProtocolGenerationFailure.client_unavailable("no protocol generator configured"),
                "Failed to generate quantum security protocol",
            )
        try:
            return await self._protocol.generate(prompt, file)
        except ProtocolGenerationFailure as e:
            raise self._fail(e, "Failed to generate quantum security protocol")
