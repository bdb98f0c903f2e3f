"""
Accounts and Tags

Plain registries. Deleting an account does not cascade: entries, balances
and investments that point at it stay where they are.
"""

from datetime import datetime
from typing import Optional

import structlog

from household_ledger.finance.cycle import Clock
from household_ledger.finance.errors import failure_from, refuse
from household_ledger.finance.ledger import require_account
from household_ledger.models.entities import Account, EntryKind, Tag, TagUsage
from household_ledger.models.results import FailureReason, OperationResult
from household_ledger.services.relations import RelationsDirectory
from household_ledger.services.repositories import AccountRepository, TagRepository
from household_ledger.services.storage import DocumentStore, new_document_id, where


logger = structlog.get_logger(__name__)


class AccountRegistry:
    def __init__(
        self,
        store: DocumentStore,
        relations: RelationsDirectory,
        clock: Clock = datetime.now,
    ):
        self._accounts = AccountRepository(store)
        self._relations = relations
        self._clock = clock

    async def create(self, person_id: str, name: str, color_hex: Optional[str] = None) -> OperationResult:
        try:
            account = Account(
                id=new_document_id(),
                person_id=person_id,
                name=name,
                color_hex=color_hex,
                created_at=self._clock(),
            )
            await self._accounts.save(account)
        except Exception as e:
            return failure_from(e, "create_account")
        logger.info("account_created", account_id=account.id)
        return OperationResult.ok(account)

    async def update(
        self,
        person_id: str,
        account_id: str,
        name: Optional[str] = None,
        color_hex: Optional[str] = None,
    ) -> OperationResult:
        """Rename and/or recolor an account."""
        try:
            owners = await self._relations.allowed_owner_ids(person_id)
            account = await require_account(self._accounts, owners, account_id)
            changes = {}
            if name is not None:
                changes["name"] = name
            if color_hex is not None:
                changes["color_hex"] = color_hex
            updated = Account.model_validate({**account.model_dump(), **changes})
            await self._accounts.save(updated)
        except Exception as e:
            return failure_from(e, "update_account")
        return OperationResult.ok(updated)

    async def delete(self, person_id: str, account_id: str) -> OperationResult:
        try:
            owners = await self._relations.allowed_owner_ids(person_id)
            account = await require_account(self._accounts, owners, account_id)
            await self._accounts.delete(account.id)
        except Exception as e:
            return failure_from(e, "delete_account")
        logger.info("account_deleted", account_id=account_id)
        return OperationResult.ok(account)

    async def list_accessible(self, person_id: str) -> OperationResult:
        """Accounts of the person and everyone related to them, by name."""
        try:
            owners = await self._relations.allowed_owner_ids(person_id)
            accounts = await self._accounts.for_owners(owners)
        except Exception as e:
            return failure_from(e, "list_accounts")
        return OperationResult.ok(accounts)


class TagRegistry:
    def __init__(self, store: DocumentStore):
        self._tags = TagRepository(store)

    async def create(
        self,
        name: str,
        usage: TagUsage = TagUsage.BOTH,
        person_id: Optional[str] = None,
    ) -> OperationResult:
        try:
            tag = Tag(id=new_document_id(), name=name, usage=usage, person_id=person_id)
            await self._tags.save(tag)
        except Exception as e:
            return failure_from(e, "create_tag")
        return OperationResult.ok(tag)

    async def list_for(self, kind: Optional[EntryKind] = None) -> OperationResult:
        """All tags, or only those usable for entries of kind."""
        try:
            tags = await self._tags.find()
        except Exception as e:
            return failure_from(e, "list_tags")
        if kind is not None:
            tags = [tag for tag in tags if tag.applies_to(kind)]
        return OperationResult.ok(sorted(tags, key=lambda t: t.name.lower()))

    async def find_or_create(self, name: str, usage: TagUsage) -> OperationResult:
        """The tag with this exact name and usage, created on first use."""
        try:
            existing = await self._tags.find([
                where("name", "==", name),
                where("usage", "==", usage.value),
            ])
            if existing:
                return OperationResult.ok(existing[0])
        except Exception as e:
            return failure_from(e, "find_tag")
        return await self.create(name, usage)

    async def delete(self, tag_id: str) -> OperationResult:
        try:
            if not await self._tags.delete(tag_id):
                raise refuse(FailureReason.NOT_FOUND, f"Tag {tag_id} not found")
        except Exception as e:
            return failure_from(e, "delete_tag")
        return OperationResult.ok()
