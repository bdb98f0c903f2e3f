"""Tests for person relations."""

from tests.conftest import PARTNER, PERSON, STRANGER


class TestRelations:
    """Tests for StoreRelationsDirectory."""

    async def test_alone_means_only_self(self, relations):
        """A person without relations sees only their own data."""
        assert await relations.allowed_owner_ids(PERSON) == {PERSON}

    async def test_relation_works_both_ways(self, relations):
        """Linking A to B also relates B to A."""
        await relations.link(PERSON, PARTNER)
        assert await relations.related_owner_ids(PERSON) == {PARTNER}
        assert await relations.related_owner_ids(PARTNER) == {PERSON}
        assert await relations.allowed_owner_ids(STRANGER) == {STRANGER}

    async def test_link_is_idempotent(self, store, relations):
        """Linking the same pair twice, in either order, stores one relation."""
        first = await relations.link(PERSON, PARTNER)
        second = await relations.link(PARTNER, PERSON)
        assert first.id == second.id
        assert store.count("personRelations") == 1

    async def test_unlink(self, relations):
        """Unlinking removes the shared view."""
        await relations.link(PERSON, PARTNER)
        assert await relations.unlink(PARTNER, PERSON) is True
        assert await relations.allowed_owner_ids(PERSON) == {PERSON}
        assert await relations.unlink(PERSON, PARTNER) is False
