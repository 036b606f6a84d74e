"""User repository over the entity store (implements IUserRepository).

Email uniqueness is enforced by the store (unique field); collisions surface
here as DuplicateKeyError and are translated to DuplicateEmailException.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from app.application.dtos.query import ListQuery
from app.application.interfaces.store import IEntityStore
from app.domain.entities import UserEntity
from app.domain.exceptions import DuplicateEmailException
from app.infrastructure.exceptions import DuplicateKeyError
from app.infrastructure.persistence.collections import COLLECTION_USERS


class UserRepository:
    """User repository. Implements IUserRepository."""

    def __init__(self, store: IEntityStore) -> None:
        self.store = store

    async def get_by_id(self, user_id: str) -> UserEntity | None:
        """Return user by ID."""
        doc = await self.store.find_by_id(COLLECTION_USERS, user_id)
        return UserEntity.from_document(doc) if doc else None

    async def get_by_email(self, email: str) -> UserEntity | None:
        """Return user by normalized email."""
        docs = await self.store.find(COLLECTION_USERS, {"email": email}, limit=1)
        return UserEntity.from_document(docs[0]) if docs else None

    async def get_document(
        self, user_id: str, select: Mapping[str, int] | None = None
    ) -> dict[str, Any] | None:
        if not select:
            return await self.store.find_by_id(COLLECTION_USERS, user_id)
        docs = await self.store.find(COLLECTION_USERS, {"id": user_id}, select=select, limit=1)
        return docs[0] if docs else None

    async def list(self, query: ListQuery) -> list[dict[str, Any]]:
        return await self.store.find(
            COLLECTION_USERS,
            query.where,
            select=query.select,
            sort=query.sort,
            skip=query.skip,
            limit=query.limit,
        )

    async def count(self, query: ListQuery) -> int:
        return await self.store.count(COLLECTION_USERS, query.where)

    async def create(self, user: UserEntity) -> UserEntity:
        """Persist a new user; raise DuplicateEmailException on email collision."""
        try:
            doc = await self.store.create(COLLECTION_USERS, user.to_document())
        except DuplicateKeyError as e:
            if e.field == "email":
                raise DuplicateEmailException(user.email) from e
            raise
        return UserEntity.from_document(doc)

    async def save(self, user: UserEntity) -> bool:
        """Overwrite an existing user; raise DuplicateEmailException on email collision."""
        try:
            return await self.store.replace_one(COLLECTION_USERS, user.id, user.to_document())
        except DuplicateKeyError as e:
            if e.field == "email":
                raise DuplicateEmailException(user.email) from e
            raise

    async def delete(self, user_id: str) -> bool:
        return await self.store.delete_one(COLLECTION_USERS, user_id)
