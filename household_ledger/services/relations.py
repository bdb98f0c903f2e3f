"""
Person Relations

Two persons who declare a relation share one household ledger: every
aggregation expands the requesting person to themselves plus everybody
related to them, in either direction.
"""

import asyncio
from abc import ABC, abstractmethod

from household_ledger.models.entities import PersonRelation
from household_ledger.services.repositories import RelationRepository
from household_ledger.services.storage import DocumentStore, new_document_id, where


class RelationsDirectory(ABC):
    """Identity collaborator consumed by the ledger core."""

    @abstractmethod
    async def related_owner_ids(self, person_id: str) -> set[str]:
        """Ids of persons related to person_id (not including person_id)."""
        pass

    async def allowed_owner_ids(self, person_id: str) -> set[str]:
        """The person plus everybody related to them."""
        return {person_id} | await self.related_owner_ids(person_id)


class StoreRelationsDirectory(RelationsDirectory):
    """RelationsDirectory backed by the personRelations collection."""

    def __init__(self, store: DocumentStore):
        self._relations = RelationRepository(store)

    async def related_owner_ids(self, person_id: str) -> set[str]:
        outgoing, incoming = await asyncio.gather(
            self._relations.find([where("person_id", "==", person_id)]),
            self._relations.find([where("related_person_id", "==", person_id)]),
        )
        related = {r.related_person_id for r in outgoing} | {r.person_id for r in incoming}
        related.discard(person_id)
        return related

    async def link(self, person_id: str, related_person_id: str) -> PersonRelation:
        """Relate two persons. Linking an existing pair returns the existing relation."""
        existing = await self._find_pair(person_id, related_person_id)
        if existing is not None:
            return existing
        relation = PersonRelation(
            id=new_document_id(),
            person_id=person_id,
            related_person_id=related_person_id,
        )
        await self._relations.save(relation)
        return relation

    async def unlink(self, person_id: str, related_person_id: str) -> bool:
        existing = await self._find_pair(person_id, related_person_id)
        if existing is None:
            return False
        return await self._relations.delete(existing.id)

    async def _find_pair(self, first: str, second: str):
        forward, backward = await asyncio.gather(
            self._relations.find([
                where("person_id", "==", first),
                where("related_person_id", "==", second),
            ]),
            self._relations.find([
                where("person_id", "==", second),
                where("related_person_id", "==", first),
            ]),
        )
        matches = forward + backward
        return matches[0] if matches else None
