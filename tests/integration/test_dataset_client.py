"""
Integration tests for Dataset and Transaction against a fake Datastore.

The fake speaks the real wire protocol through httpx.MockTransport, so
these tests exercise the whole path from the host objects down to the
HTTP request.

Tests cover:
- Save / get / delete round trips
- Query pages and streaming
- Transactions: buffering, commit, rollback
"""

import pytest
import httpx

from datastore_sdk import _pb as pb
from datastore_sdk.client import Dataset
from datastore_sdk.config import Settings
from datastore_sdk.entity import Key, key_from_key_proto, key_to_key_proto
from datastore_sdk.errors import InvalidKeyError, TransactionError


class FakeDatastore:
    """In-memory Datastore speaking the v1beta2 protobuf API."""

    def __init__(self, page_size: int = 2) -> None:
        self.entities: dict[tuple, object] = {}
        self.actions: list[str] = []
        self.requests: list[httpx.Request] = []
        self.commits: list[object] = []
        self.page_size = page_size
        self.next_id = 1000

    def __call__(self, request: httpx.Request) -> httpx.Response:
        action = request.url.path.rsplit("/", 1)[-1]
        self.actions.append(action)
        self.requests.append(request)
        handler = getattr(self, f"_{action}")
        return httpx.Response(200, content=handler(request.content).SerializeToString())

    def _beginTransaction(self, content):
        return pb.BeginTransactionResponse(transaction=b"tx-1")

    def _rollback(self, content):
        return pb.RollbackResponse()

    def _lookup(self, content):
        req = pb.LookupRequest.FromString(content)
        resp = pb.LookupResponse()
        for key in req.key:
            path = tuple(key_from_key_proto(key).path)
            if path in self.entities:
                resp.found.add().entity.CopyFrom(self.entities[path])
            else:
                resp.missing.add().entity.key.CopyFrom(key)
        return resp

    def _commit(self, content):
        req = pb.CommitRequest.FromString(content)
        self.commits.append(req)
        result = pb.MutationResult()

        for ent in req.mutation.upsert:
            self.entities[tuple(key_from_key_proto(ent.key).path)] = ent
        for ent in req.mutation.insert_auto_id:
            self.next_id += 1
            ent.key.path_element[-1].id = self.next_id
            self.entities[tuple(key_from_key_proto(ent.key).path)] = ent
            result.insert_auto_id_key.add().CopyFrom(ent.key)
        for key in req.mutation.delete:
            self.entities.pop(tuple(key_from_key_proto(key).path), None)

        result.index_updates = len(self.entities)
        return pb.CommitResponse(mutation_result=result)

    def _runQuery(self, content):
        req = pb.RunQueryRequest.FromString(content)
        kinds = {k.name for k in req.query.kind}
        matching = [
            ent for path, ent in sorted(self.entities.items(), key=lambda item: str(item[0]))
            if path[-2] in kinds
        ]

        start = int(req.query.start_cursor or b"0") + req.query.offset
        size = self.page_size
        if req.query.HasField("limit"):
            size = min(size, req.query.limit)
        page = matching[start:start + size]

        batch = pb.QueryResultBatch()
        for ent in page:
            batch.entity_result.add().entity.CopyFrom(ent)
        if page:
            batch.end_cursor = str(start + len(page)).encode()
        return pb.RunQueryResponse(batch=batch)

    def _allocateIds(self, content):
        req = pb.AllocateIdsRequest.FromString(content)
        resp = pb.AllocateIdsResponse()
        for key in req.key:
            self.next_id += 1
            allocated = resp.key.add()
            allocated.CopyFrom(key)
            allocated.path_element[-1].id = self.next_id
        return resp


@pytest.fixture
def fake():
    return FakeDatastore()


@pytest.fixture
def dataset(fake):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return Dataset("my-project", client=client, settings=Settings())


class TestDataset:
    """Tests for non-transactional operations."""

    @pytest.mark.asyncio
    async def test_save_assigns_id_then_get(self, dataset, fake):
        """Saving an incomplete key completes it; get reads it back."""
        key = dataset.key("Company")

        await dataset.save({"key": key, "data": {"name": "Acme", "size": 10}})

        assert key.is_complete
        assert key.path == ["Company", 1001]
        entity = await dataset.get(key)
        assert entity.data == {"name": "Acme", "size": 10}
        assert fake.commits[0].mode == pb.MODE_NON_TRANSACTIONAL

    @pytest.mark.asyncio
    async def test_get_many_skips_missing(self, dataset):
        """Missing keys are simply absent from batch results."""
        await dataset.save(
            [
                {"key": dataset.key(["Company", "a"]), "data": {"n": 1}},
                {"key": dataset.key(["Company", "c"]), "data": {"n": 3}},
            ]
        )

        found = await dataset.get(
            [dataset.key(["Company", k]) for k in ("a", "b", "c")]
        )

        assert [e.key.path for e in found] == [["Company", "a"], ["Company", "c"]]

    @pytest.mark.asyncio
    async def test_delete(self, dataset):
        """Deleted entities are no longer found."""
        key = dataset.key(["Company", "gone"])
        await dataset.save({"key": key, "data": {}})

        await dataset.delete(key)

        assert await dataset.get(key) is None

    @pytest.mark.asyncio
    async def test_query_pages(self, dataset):
        """Page mode returns one page and a cursor to continue from."""
        await dataset.save(
            [{"key": dataset.key(["Company", f"c{i}"]), "data": {"i": i}} for i in range(3)]
        )
        q = dataset.create_query("Company")

        first, cursor = await dataset.run_query(q)
        second, _ = await dataset.run_query(q.start(cursor))

        assert len(first) == 2
        assert len(second) == 1
        assert {e.data["i"] for e in first + second} == {0, 1, 2}

    @pytest.mark.asyncio
    async def test_stream_all_results(self, dataset):
        """Streaming walks every page."""
        await dataset.save(
            [{"key": dataset.key(["Company", f"c{i}"]), "data": {"i": i}} for i in range(5)]
        )

        items = [e async for e in dataset.stream_query(dataset.create_query("Company"))]

        assert sorted(e.data["i"] for e in items) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_stream_with_limit(self, dataset, fake):
        """A limit caps the total across pages."""
        await dataset.save(
            [{"key": dataset.key(["Company", f"c{i}"]), "data": {"i": i}} for i in range(5)]
        )
        fake.actions.clear()

        items = [
            e async for e in dataset.stream_query(dataset.create_query("Company").limit(3))
        ]

        assert len(items) == 3
        assert fake.actions == ["runQuery", "runQuery"]

    @pytest.mark.asyncio
    async def test_allocate_ids(self, dataset, fake):
        """Allocated keys come back complete."""
        keys = await dataset.allocate_ids(dataset.key("Company"), 2)

        assert [k.path for k in keys] == [["Company", 1001], ["Company", 1002]]

        with pytest.raises(InvalidKeyError):
            dataset.allocate_ids(keys[0], 1)

    @pytest.mark.asyncio
    async def test_namespace_default(self, fake):
        """The dataset namespace applies to keys and queries."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
        ds = Dataset("my-project", client=client, settings=Settings(), namespace="ns")

        key = ds.key(["Company", 1])

        assert key.namespace == "ns"
        assert ds.create_query("Company").namespace == "ns"
        assert key_to_key_proto(key).partition_id.namespace == "ns"


class TestTransaction:
    """Tests for transactional operations."""

    @pytest.mark.asyncio
    async def test_mutations_buffered_until_commit(self, dataset, fake):
        """Saves and deletes only reach the server on commit."""
        tx = await dataset.transaction().begin()
        key_a = dataset.key("Company")
        key_b = dataset.key("Company")

        await tx.save({"key": key_a, "data": {"name": "A"}})
        await tx.delete(dataset.key(["Company", "old"]))
        await tx.save({"key": key_b, "data": {"name": "B"}})

        assert fake.actions == ["beginTransaction"]
        assert not key_a.is_complete

        await tx.commit()

        assert fake.actions == ["beginTransaction", "commit"]
        commit = fake.commits[0]
        assert commit.mode == pb.MODE_TRANSACTIONAL
        assert commit.transaction == b"tx-1"
        assert len(commit.mutation.insert_auto_id) == 2
        assert len(commit.mutation.delete) == 1
        assert key_a.path == ["Company", 1001]
        assert key_b.path == ["Company", 1002]

    @pytest.mark.asyncio
    async def test_lookup_uses_transaction(self, dataset, fake):
        """Reads inside a transaction are sent immediately."""
        tx = await dataset.transaction().begin()

        assert await tx.get(dataset.key(["Company", "x"])) is None
        assert fake.actions == ["beginTransaction", "lookup"]

    @pytest.mark.asyncio
    async def test_not_begun(self, dataset):
        """Operations before begin() are rejected."""
        tx = dataset.transaction()

        with pytest.raises(TransactionError):
            await tx.save({"key": dataset.key("Company"), "data": {}})

    @pytest.mark.asyncio
    async def test_finalized_after_commit(self, dataset):
        """A committed transaction cannot be reused."""
        tx = await dataset.transaction().begin()
        await tx.commit()

        with pytest.raises(TransactionError):
            await tx.commit()

    @pytest.mark.asyncio
    async def test_run_in_transaction_commits(self, dataset, fake):
        """run_in_transaction commits after the function returns."""
        key = dataset.key("Company")

        async def work(tx):
            await tx.save({"key": key, "data": {"name": "Acme"}})
            return "done"

        assert await dataset.run_in_transaction(work) == "done"
        assert fake.actions == ["beginTransaction", "commit"]
        assert key.is_complete

    @pytest.mark.asyncio
    async def test_run_in_transaction_rolls_back(self, dataset, fake):
        """Errors roll the transaction back and propagate."""
        key = dataset.key("Company")

        async def work(tx):
            await tx.save({"key": key, "data": {}})
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await dataset.run_in_transaction(work)

        assert fake.actions == ["beginTransaction", "rollback"]
        assert fake.entities == {}
        assert not key.is_complete


class TestSettings:
    """Tests for building a dataset from settings."""

    @pytest.mark.asyncio
    async def test_from_settings(self, fake):
        """Endpoint, namespace and token come from settings."""
        settings = Settings(
            project_id="env-project",
            namespace="tenant-a",
            api_host="localhost:8081",
            scheme="http",
            access_token="secret",
        )
        client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
        ds = Dataset.from_settings(settings, client=client)

        key = ds.key(["Company", "acme"])
        await ds.save({"key": key, "data": {"name": "Acme"}})

        assert ds.project_id == "env-project"
        assert key.namespace == "tenant-a"
        request = fake.requests[0]
        assert str(request.url) == (
            "http://localhost:8081/datastore/v1beta2/datasets/env-project/commit"
        )
        assert request.headers["authorization"] == "Bearer secret"

    def test_settings_from_environment(self, monkeypatch):
        """Settings read DATASTORE_-prefixed environment variables."""
        monkeypatch.setenv("DATASTORE_PROJECT_ID", "from-env")
        monkeypatch.setenv("DATASTORE_TIMEOUT", "5")

        ds = Dataset.from_settings()

        assert ds.project_id == "from-env"
        assert Settings().timeout == 5.0
