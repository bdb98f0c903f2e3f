"""Tests for the in-memory document store and query helpers."""

import pytest

from household_ledger.services.storage import (
    BatchConflictError,
    BatchWriteError,
    InMemoryDocumentStore,
    NotFoundError,
    where,
)
from household_ledger.services.storage.interface import resolve_field, select_documents


class TestQueries:
    """Tests for filtering, ordering and limits."""

    async def test_filters_are_anded(self, store):
        """Every filter must match."""
        await store.set("items", "a", {"owner": "alice", "n": 1})
        await store.set("items", "b", {"owner": "alice", "n": 5})
        await store.set("items", "c", {"owner": "bob", "n": 5})

        found = await store.query("items", [where("owner", "==", "alice"), where("n", ">=", 2)])
        assert [d["id"] for d in found] == ["b"]

    async def test_in_operator(self, store):
        """'in' matches any listed value."""
        await store.set("items", "a", {"owner": "alice"})
        await store.set("items", "b", {"owner": "bob"})
        await store.set("items", "c", {"owner": "carol"})

        found = await store.query("items", [where("owner", "in", ["alice", "carol"])], order_by="owner")
        assert [d["id"] for d in found] == ["a", "c"]

    async def test_equals_none_matches_missing_field(self, store):
        """A missing field compares equal to None."""
        await store.set("items", "a", {"account_id": None})
        await store.set("items", "b", {})
        await store.set("items", "c", {"account_id": "x"})

        found = await store.query("items", [where("account_id", "==", None)])
        assert sorted(d["id"] for d in found) == ["a", "b"]

    async def test_range_skips_missing_values(self, store):
        """Range filters never match a missing field."""
        await store.set("items", "a", {"at": "2024-03-01T00:00:00"})
        await store.set("items", "b", {})
        found = await store.query("items", [where("at", "<=", "2024-12-31T00:00:00")])
        assert [d["id"] for d in found] == ["a"]

    async def test_order_descending_with_limit(self, store):
        """Newest first, then truncated."""
        for day in (3, 1, 2):
            await store.set("items", f"d{day}", {"at": f"2024-03-0{day}"})
        found = await store.query("items", order_by="at", descending=True, limit=2)
        assert [d["id"] for d in found] == ["d3", "d2"]

    def test_nested_paths(self):
        """Dotted paths walk into nested documents."""
        document = {"settlement": {"entry_id": "e1"}}
        assert resolve_field(document, "settlement.entry_id") == "e1"
        assert resolve_field({"settlement": None}, "settlement.entry_id") is None

    def test_missing_order_field_sorts_last(self):
        """Documents without the sort field go to the end."""
        documents = [{"id": "x"}, {"id": "y", "n": 2}, {"id": "z", "n": 1}]
        ordered = select_documents(documents, order_by="n")
        assert [d["id"] for d in ordered] == ["z", "y", "x"]


class TestDocuments:
    """Tests for single-document writes."""

    async def test_returned_documents_are_copies(self, store):
        """Mutating a read never changes stored state."""
        await store.set("items", "a", {"tags": ["x"]})
        document = await store.get("items", "a")
        document["tags"].append("y")
        assert (await store.get("items", "a"))["tags"] == ["x"]

    async def test_create_generates_id(self, store):
        """create returns a fresh id."""
        first = await store.create("items", {"n": 1})
        second = await store.create("items", {"n": 2})
        assert first != second
        assert (await store.get("items", first))["n"] == 1

    async def test_merge_update(self, store):
        """Only the given fields change."""
        await store.set("items", "a", {"n": 1, "name": "one"})
        await store.merge_update("items", "a", {"n": 2})
        assert await store.get("items", "a") == {"id": "a", "n": 2, "name": "one"}

    async def test_merge_update_missing(self, store):
        """Updating a missing document raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await store.merge_update("items", "ghost", {"n": 2})

    async def test_delete_reports_existence(self, store):
        """delete is True only when something was removed."""
        await store.set("items", "a", {})
        assert await store.delete("items", "a") is True
        assert await store.delete("items", "a") is False


class TestBatches:
    """Tests for all-or-nothing batches."""

    async def test_commit_applies_all(self, store):
        """Every queued write lands."""
        await store.set("items", "old", {"n": 0})
        batch = store.new_batch()
        created = batch.create("items", {"n": 1})
        batch.update("items", "old", {"n": 9})
        batch.create("others", {"ref": created})
        await store.commit_batch(batch)

        assert (await store.get("items", created))["n"] == 1
        assert (await store.get("items", "old"))["n"] == 9
        assert store.count("others") == 1

    async def test_failing_write_applies_none(self, store):
        """One bad write rolls the whole batch back."""
        await store.set("items", "keep", {"n": 0})
        batch = store.new_batch()
        batch.create("items", {"n": 1}, document_id="fresh")
        batch.update("items", "keep", {"n": 5})
        batch.delete("items", "ghost")

        with pytest.raises(BatchWriteError):
            await store.commit_batch(batch)

        assert await store.get("items", "fresh") is None
        assert (await store.get("items", "keep"))["n"] == 0

    async def test_create_existing_fails(self, store):
        """A create onto an existing id fails the batch."""
        await store.set("items", "a", {"n": 0})
        batch = store.new_batch()
        batch.create("items", {"n": 1}, document_id="a")
        with pytest.raises(BatchWriteError):
            await store.commit_batch(batch)
        assert (await store.get("items", "a"))["n"] == 0

    async def test_update_with_stale_expectation_fails(self, store):
        """An expected value that no longer holds aborts the batch."""
        await store.set("items", "a", {"lock": {"cycle": "2024-03"}})
        batch = store.new_batch()
        batch.create("others", {"n": 1}, document_id="x")
        batch.update("items", "a", {"lock": {"cycle": "2024-04"}}, expect={"lock.cycle": None})

        with pytest.raises(BatchConflictError):
            await store.commit_batch(batch)
        assert await store.get("others", "x") is None
        assert (await store.get("items", "a"))["lock"] == {"cycle": "2024-03"}

    async def test_update_with_matching_expectation(self, store):
        """A missing field matches an expected None."""
        await store.set("items", "a", {"lock": None})
        batch = store.new_batch()
        batch.update("items", "a", {"lock": {"cycle": "2024-03"}}, expect={"lock.cycle": None})
        await store.commit_batch(batch)
        assert (await store.get("items", "a"))["lock"] == {"cycle": "2024-03"}

    def test_batch_queues_copies(self):
        """Queued data is detached from the caller's dict."""
        data = {"n": 1}
        batch = InMemoryDocumentStore().new_batch()
        batch.set("items", "a", data)
        data["n"] = 2
        assert batch.operations[0].data == {"n": 1}
        assert len(batch) == 1
