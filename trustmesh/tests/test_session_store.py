"""
Unit Tests: Session Store

Tests:
    - Record model encoding and helpers
    - Session / operation creation and stamping
    - Partial failure of sequential operation writes
    - Fingerprint-gated update and cascading delete
    - Active-session counting and live streams
"""

import asyncio

import pytest

from trustmesh.core.errors import IntegrityFailure, StoreUnavailable
from trustmesh.core.types import Timestamp
from trustmesh.session.models import (
    AuthenticationType,
    Operation,
    OperationDraft,
    SecurityLevel,
    Session,
    SessionDraft,
    SessionWithOperations,
    format_asymmetry,
    record_from_document,
    security_summary,
    status_text,
)
from trustmesh.session.store import SessionStore
from trustmesh.storage.backends import InMemoryDocumentStore
from trustmesh.tests.support import (
    STRICT_PARAMS,
    FixedRandom,
    StepClock,
    WriteLimitedStore,
    make_session_store,
)
from trustmesh.trust.auth_hash import AuthHashGenerator
from trustmesh.trust.fingerprint import FingerprintVerifier

OWNER = "quantum-owner"


def _draft(name="Rollout", level=SecurityLevel.HIGH):
    return SessionDraft(session_name=name, security_level=level)


def _ops(k):
    return [OperationDraft(session_name=f"op-{i}") for i in range(k)]


class TestModels:
    """Tests for record encoding and helpers."""

    def test_security_level_order(self):
        assert SecurityLevel.NONE < SecurityLevel.LOW < SecurityLevel.MEDIUM
        assert SecurityLevel.MEDIUM < SecurityLevel.HIGH < SecurityLevel.QUANTUM
        assert max(SecurityLevel) is SecurityLevel.QUANTUM
        assert SecurityLevel.QUANTUM.rank == 4

    def test_session_round_trip(self):
        session = Session(
            id="s1",
            session_name="Rollout",
            security_level=SecurityLevel.QUANTUM,
            authenticated=True,
            owner=OWNER,
            created_time=Timestamp(42),
            authentication_type=AuthenticationType.QUOREMIND,
            lambda_alpha=0.162494,
            auth_hash="abc",
        )
        doc = session.to_document()

        assert doc["securityLevel"] == "quantum"
        assert doc["createdTime"] == 42
        assert "parentId" not in doc and "asymmetryMeasurement" not in doc
        assert record_from_document(doc) == session

    def test_operation_round_trip(self):
        op = Operation(
            id="o1",
            session_name="step",
            parent_id="s1",
            order=2,
            authenticated=False,
            owner=OWNER,
            created_time=Timestamp(7),
        )
        doc = op.to_document()

        assert "securityLevel" not in doc
        assert record_from_document(doc) == op

    @pytest.mark.parametrize(
        "doc",
        [
            {"id": "x", "sessionName": "n"},
            {"id": "x", "sessionName": "n", "securityLevel": "low", "parentId": "p", "order": 0},
        ],
    )
    def test_ambiguous_documents_rejected(self, doc):
        with pytest.raises(ValueError):
            record_from_document(doc)

    def test_status_helpers(self):
        session = Session("s", "n", SecurityLevel.QUANTUM, True, OWNER, Timestamp(0),
                          authentication_type=AuthenticationType.PUF)

        assert status_text(session) == "Authenticated (PUF)"
        assert status_text(session.with_authentication(False)) == "Pending Authentication"
        assert status_text(None) == "Unknown"
        assert session.is_quantum_secure
        assert not session.with_authentication(False).is_quantum_secure
        assert security_summary(session) == "Security Level: QUANTUM\nStatus: Authenticated\nAuth Type: PUF"
        assert format_asymmetry(0.1624941234) == "0.162494"
        assert format_asymmetry(None) == "N/A"

    def test_bundle_authentication(self):
        session = Session("s", "n", SecurityLevel.LOW, False, OWNER, Timestamp(0))
        ops = tuple(
            Operation(f"o{i}", "op", "s", i, False, OWNER, Timestamp(0)) for i in range(3)
        )
        bundle = SessionWithOperations(session, ops).with_authentication(True)

        assert bundle.session.authenticated
        assert all(op.authenticated for op in bundle.operations)
        assert bundle.operation_count == 3


class TestCreate:
    """Tests for creation and stamping."""

    def test_create_session_stamps_fields(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            store = make_session_store(documents)
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()

            doc = documents.snapshot(store.collection)[session_id]
            assert doc["owner"] == OWNER
            assert doc["lambdaAlpha"] == STRICT_PARAMS.lambda_alpha
            assert doc["lambdaBeta"] == STRICT_PARAMS.lambda_beta
            assert doc["securityLevel"] == "high"
            assert isinstance(doc["createdTime"], int)
            assert 1 <= len(doc["authHash"]) <= 16
            assert "parentId" not in doc

        asyncio.run(scenario())

    @pytest.mark.parametrize("k", [0, 1, 5])
    def test_operations_have_contiguous_order(self, k):
        async def scenario():
            documents = InMemoryDocumentStore()
            store = make_session_store(documents)
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            ids = (await store.create_operations(session_id, _ops(k), OWNER)).unwrap()

            ops = (await store.list_operations(session_id)).unwrap()
            assert [op.order for op in ops] == list(range(k))
            assert [op.id for op in ops] == ids
            assert [op.session_name for op in ops] == [f"op-{i}" for i in range(k)]
            assert all(op.parent_id == session_id and op.owner == OWNER for op in ops)

        asyncio.run(scenario())

    def test_operation_hash_uses_index(self):
        async def scenario():
            rng = FixedRandom(0.5)
            store = make_session_store(rng=rng)
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            await store.create_operations(session_id, _ops(3), OWNER)

            hasher = AuthHashGenerator(STRICT_PARAMS)
            ops = (await store.list_operations(session_id)).unwrap()
            assert [op.auth_hash for op in ops] == [hasher.derive(i, 0.5) for i in range(3)]

        asyncio.run(scenario())

    def test_partial_failure_keeps_committed_prefix(self):
        async def scenario():
            # session + 2 operations succeed, the third operation fails
            documents = WriteLimitedStore(limit=3)
            store = make_session_store(documents)
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            result = await store.create_operations(session_id, _ops(5), OWNER)

            assert result.is_err()
            assert isinstance(result.error, StoreUnavailable)
            assert result.error.context["committed"] == 2

            ops = (await store.list_operations(session_id)).unwrap()
            assert [op.order for op in ops] == [0, 1]

        asyncio.run(scenario())

    def test_created_time_never_goes_backwards(self):
        async def scenario():
            rng = FixedRandom()
            store = SessionStore(
                InMemoryDocumentStore(),
                FingerprintVerifier(STRICT_PARAMS, rng),
                AuthHashGenerator(STRICT_PARAMS, rng),
                clock=StepClock(5_000, 4_000, 6_000),
            )
            for name in ("a", "b", "c"):
                await store.create_session(_draft(name), OWNER)

            sessions = (await store.list_sessions()).unwrap()
            times = {s.session_name: s.created_time.millis for s in sessions}
            assert times == {"a": 5_000, "b": 5_000, "c": 6_000}
            assert [s.session_name for s in sessions][0] == "c"

        asyncio.run(scenario())


class TestGatedMutations:
    """Tests for fingerprint-gated update and delete."""

    def test_update_stamps_measurement(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            store = make_session_store(documents)
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            session = (await store.list_sessions()).unwrap()[0]

            measured = (await store.update_session(session.with_authentication(True))).unwrap()

            doc = documents.snapshot(store.collection)[session_id]
            assert doc["authenticated"] is True
            assert doc["asymmetryMeasurement"] == measured

        asyncio.run(scenario())

    def test_failed_gate_leaves_record_unchanged(self):
        async def scenario():
            rng = FixedRandom(0.5)
            documents = InMemoryDocumentStore()
            store = make_session_store(documents, rng=rng)
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            before = documents.snapshot(store.collection)
            writes = documents.calls["set"]
            session = (await store.list_sessions()).unwrap()[0]

            rng.value = 0.0
            result = await store.update_session(session.with_authentication(True))

            assert isinstance(result.error, IntegrityFailure)
            assert documents.snapshot(store.collection) == before
            assert documents.calls["set"] == writes
            assert session_id in before

        asyncio.run(scenario())

    def test_cascade_delete_removes_everything(self):
        async def scenario():
            documents = InMemoryDocumentStore()
            store = make_session_store(documents)
            keep = (await store.create_session(_draft("keep"), OWNER)).unwrap()
            session_id = (await store.create_session(_draft("drop"), OWNER)).unwrap()
            await store.create_operations(session_id, _ops(4), OWNER)

            assert (await store.delete_session_cascade(session_id)).unwrap() == 4

            remaining = documents.snapshot(store.collection)
            assert list(remaining) == [keep]
            assert (await store.list_operations(session_id)).unwrap() == []

        asyncio.run(scenario())

    def test_cascade_delete_gate_failure_deletes_nothing(self):
        async def scenario():
            rng = FixedRandom(0.5)
            documents = InMemoryDocumentStore()
            store = make_session_store(documents, rng=rng)
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            await store.create_operations(session_id, _ops(2), OWNER)

            rng.value = 0.0
            result = await store.delete_session_cascade(session_id)

            assert isinstance(result.error, IntegrityFailure)
            assert len(documents.snapshot(store.collection)) == 3
            assert documents.calls["delete"] == 0

        asyncio.run(scenario())


class TestReads:
    """Tests for counts and live streams."""

    def test_count_excludes_operations_and_level_none(self):
        async def scenario():
            store = make_session_store()
            s1 = (await store.create_session(_draft("a"), OWNER)).unwrap()
            await store.create_session(_draft("hidden", SecurityLevel.NONE), OWNER)
            await store.create_operations(s1, _ops(3), OWNER)

            assert (await store.count_active_sessions()).unwrap() == 1

        asyncio.run(scenario())

    def test_stream_sessions_newest_first(self):
        async def scenario():
            rng = FixedRandom()
            store = SessionStore(
                InMemoryDocumentStore(),
                FingerprintVerifier(STRICT_PARAMS, rng),
                AuthHashGenerator(STRICT_PARAMS, rng),
                clock=StepClock(1_000, 2_000, 3_000),
            )
            seen = []
            await store.create_session(_draft("first"), OWNER)
            handle = (await store.stream_sessions(seen.append)).unwrap()
            await store.create_session(_draft("second"), OWNER)

            assert [[s.session_name for s in batch] for batch in seen] == [
                ["first"],
                ["second", "first"],
            ]
            handle.cancel()

        asyncio.run(scenario())

    def test_stream_operations_ordered(self):
        async def scenario():
            store = make_session_store()
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            seen = []
            await store.stream_operations(session_id, seen.append)
            await store.create_operations(session_id, _ops(2), OWNER)

            assert [op.order for op in seen[-1]] == [0, 1]

        asyncio.run(scenario())

    def test_session_with_operations(self):
        async def scenario():
            store = make_session_store()
            session_id = (await store.create_session(_draft(), OWNER)).unwrap()
            await store.create_operations(session_id, _ops(2), OWNER)

            bundle = (await store.get_session_with_operations(session_id)).unwrap()
            assert bundle.session.id == session_id
            assert bundle.operation_count == 2
            assert (await store.get_session_with_operations("missing")).unwrap() is None

        asyncio.run(scenario())
