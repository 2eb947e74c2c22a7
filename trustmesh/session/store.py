"""
Session Store

Persistence of Session / Operation records in one document collection.

Design:
- Every fallible call returns Result[T, TrustMeshError]
- Gated mutations (update, cascade delete) run a fresh fingerprint check
  first; a failed check returns Err(IntegrityFailure) before any write
- Multi-record writes are sequential and never rolled back: a failure
  after k writes leaves exactly those k committed
- createdTime is clamped so it never goes backwards for this writer
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from trustmesh.core import constants as C
from trustmesh.core.config import TrustParameters
from trustmesh.core.errors import IntegrityFailure, StoreUnavailable, TrustMeshError
from trustmesh.core.types import Result, Ok, Err, Timestamp
from trustmesh.session.models import (
    Operation,
    OperationDraft,
    Record,
    Session,
    SessionDraft,
    SessionWithOperations,
    SecurityLevel,
    record_from_document,
)
from trustmesh.storage.protocols import DocumentStore, WatchErrorListener, WatchHandle
from trustmesh.storage.query import Document, Query
from trustmesh.trust.auth_hash import AuthHashGenerator
from trustmesh.trust.fingerprint import FingerprintVerifier

logger = logging.getLogger(__name__)

SessionListener = Callable[[List[Session]], None]
OperationListener = Callable[[List[Operation]], None]


def _decode(docs: List[Document], kind: type) -> list:
    """Decode documents of one kind; malformed ones are logged and skipped."""
    records = []
    for doc in docs:
        try:
            record = record_from_document(doc)
        except (KeyError, ValueError) as e:
            logger.warning("Skipping malformed record %s: %s", doc.get("id"), e)
            continue
        if isinstance(record, kind):
            records.append(record)
    return records


class SessionStore:
    """
    Session / Operation persistence over a DocumentStore.

    Example:
        store = SessionStore(InMemoryDocumentStore(), FingerprintVerifier(), AuthHashGenerator())
        session_id = (await store.create_session(draft, owner)).unwrap()
        await store.create_operations(session_id, [op1, op2], owner)
    """

    def __init__(
        self,
        documents: DocumentStore,
        verifier: FingerprintVerifier,
        hasher: AuthHashGenerator,
        collection: str = C.DEFAULT_COLLECTION,
        params: Optional[TrustParameters] = None,
        clock: Callable[[], Timestamp] = Timestamp.now,
    ) -> None:
        self._documents = documents
        self._verifier = verifier
        self._hasher = hasher
        self._collection = collection
        self._params = params or verifier.params
        self._clock = clock
        self._last_created: Optional[Timestamp] = None

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def documents(self) -> DocumentStore:
        return self._documents

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def active_sessions_query(self) -> Query:
        return Query(self._collection).where("securityLevel", "!=", SecurityLevel.NONE.value)

    @property
    def sessions_query(self) -> Query:
        return self.active_sessions_query.ordered("createdTime", descending=True)

    def operations_query(self, parent_id: str) -> Query:
        return Query(self._collection).where("parentId", "==", parent_id).ordered("order")

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _created_time(self) -> Timestamp:
        now = self._clock()
        if self._last_created is not None and now < self._last_created:
            now = self._last_created
        self._last_created = now
        return now

    async def create_session(self, draft: SessionDraft, owner: str) -> Result[str, TrustMeshError]:
        session_id = self._documents.new_id(self._collection)
        created = self._created_time()
        session = Session(
            id=session_id,
            session_name=draft.session_name,
            security_level=draft.security_level,
            authenticated=draft.authenticated,
            owner=owner,
            created_time=created,
            authentication_type=draft.authentication_type,
            lambda_alpha=self._params.lambda_alpha,
            lambda_beta=self._params.lambda_beta,
            auth_hash=self._hasher.for_session(created),
        )

        result = await self._documents.set(self._collection, session_id, session.to_document())
        if result.is_err():
            return result
        logger.info("Created session %s (%s)", session_id, draft.security_level.value)
        return Ok(session_id)

    async def create_operations(
        self,
        parent_id: str,
        drafts: Sequence[OperationDraft],
        owner: str,
    ) -> Result[List[str], TrustMeshError]:
        written: List[str] = []
        for index, draft in enumerate(drafts):
            op_id = self._documents.new_id(self._collection)
            operation = Operation(
                id=op_id,
                session_name=draft.session_name,
                parent_id=parent_id,
                order=index,
                authenticated=draft.authenticated,
                owner=owner,
                created_time=self._created_time(),
                authentication_type=draft.authentication_type,
                auth_hash=self._hasher.for_operation(index),
            )

            result = await self._documents.set(self._collection, op_id, operation.to_document())
            if result.is_err():
                error = result.error
                logger.warning(
                    "Operation write %d of %d for %s failed; %d committed",
                    index + 1, len(drafts), parent_id, len(written),
                )
                if isinstance(error, StoreUnavailable):
                    error = StoreUnavailable.write_failed(op_id, len(written), cause=error)
                return Err(error)
            written.append(op_id)

        return Ok(written)

    async def update_session(self, record: Record) -> Result[float, TrustMeshError]:
        """
        Merge the record's fields, stamping a fresh asymmetry measurement.

        Accepts sessions and operations.
        """
        reading = self._verifier.verify()
        if not reading.is_valid:
            return Err(IntegrityFailure.fingerprint_mismatch(
                "session update", reading.expected, reading.measured,
            ))

        doc = record.to_document()
        doc["asymmetryMeasurement"] = reading.measured
        result = await self._documents.set(self._collection, record.id, doc, merge=True)
        if result.is_err():
            return result
        return Ok(reading.measured)

    async def delete_session_cascade(self, session_id: str) -> Result[int, TrustMeshError]:
        """Delete operations in order, then the session. Ok(operations deleted)."""
        reading = self._verifier.verify()
        if not reading.is_valid:
            return Err(IntegrityFailure.fingerprint_mismatch(
                "session delete", reading.expected, reading.measured,
            ))

        ops = await self._documents.query(self.operations_query(session_id))
        if ops.is_err():
            return ops

        deleted = 0
        for doc in ops.unwrap():
            result = await self._documents.delete(self._collection, doc["id"])
            if result.is_err():
                return result
            deleted += 1

        result = await self._documents.delete(self._collection, session_id)
        if result.is_err():
            return result

        logger.info("Session %s and %d operations securely deleted", session_id, deleted)
        return Ok(deleted)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def count_active_sessions(self) -> Result[int, TrustMeshError]:
        return await self._documents.count(self.active_sessions_query)

    async def list_sessions(self) -> Result[List[Session], TrustMeshError]:
        result = await self._documents.query(self.sessions_query)
        return result.map(lambda docs: _decode(docs, Session))

    async def list_operations(self, parent_id: str) -> Result[List[Operation], TrustMeshError]:
        result = await self._documents.query(self.operations_query(parent_id))
        return result.map(lambda docs: _decode(docs, Operation))

    async def get_session_with_operations(
        self,
        session_id: str,
    ) -> Result[Optional[SessionWithOperations], TrustMeshError]:
        found = await self._documents.get(self._collection, session_id)
        if found.is_err():
            return found
        doc = found.unwrap()
        if doc is None:
            return Ok(None)
        sessions = _decode([doc], Session)
        if not sessions:
            return Ok(None)

        ops = await self.list_operations(session_id)
        if ops.is_err():
            return ops
        return Ok(SessionWithOperations(sessions[0], tuple(ops.unwrap())))

    async def stream_sessions(
        self,
        listener: SessionListener,
        on_error: Optional[WatchErrorListener] = None,
    ) -> Result[WatchHandle, TrustMeshError]:
        """Live filtered list, newest first."""
        return await self._documents.watch(
            self.sessions_query,
            lambda docs: listener(_decode(docs, Session)),
            on_error,
        )

    async def stream_operations(
        self,
        parent_id: str,
        listener: OperationListener,
        on_error: Optional[WatchErrorListener] = None,
    ) -> Result[WatchHandle, TrustMeshError]:
        """Live operations of one session by ascending order."""
        return await self._documents.watch(
            self.operations_query(parent_id),
            lambda docs: listener(_decode(docs, Operation)),
            on_error,
        )
