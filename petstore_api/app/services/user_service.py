"""
Business logic for users.

Users live in the ``users`` collection, indexed by ``username``.
Passwords are hashed before storage and stripped from every record
returned to the API layer.  Updates replace the whole record, so a
password left out of an update is dropped from the stored user.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from petstore_api.app.core.kv import get_document_store, get_query_evaluator
from petstore_api.app.core.security import (
    hash_password,
    is_builtin_admin,
    is_password_hash,
    verify_password,
)
from petstore_api.app.schemas.user import User

COLLECTION = "users"

logger = logging.getLogger(__name__)


class UserService:
    """Сервис для работы с пользователями.

    Хранит пользователей в Redis через документное хранилище и
    поддерживает индекс по ``username`` для поиска и входа в систему.
    """

    @staticmethod
    def _to_stored(data: User) -> Dict[str, Any]:
        record = data.to_record()
        password = record.get("password")
        if isinstance(password, str) and not is_password_hash(password):
            record["password"] = hash_password(password)
        return record

    @staticmethod
    def _public(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if record is None:
            return None
        return {key: value for key, value in record.items() if key != "password"}

    @classmethod
    async def create_user(cls, data: User) -> Dict[str, Any]:
        """Insert a user and return it without its password."""
        record = cls._to_stored(data)
        logger.info("Registering user %s (%s)", record.get("id"), record.get("username"))
        store = get_document_store()
        await run_in_threadpool(store.insert, COLLECTION, record)
        return cls._public(record)

    @classmethod
    async def create_users(cls, users: List[User]) -> List[Dict[str, Any]]:
        """Insert several users in order; stops at the first failure."""
        created = []
        for data in users:
            created.append(await cls.create_user(data))
        return created

    @classmethod
    async def update_user(cls, data: User) -> Optional[Dict[str, Any]]:
        """Replace an existing user.  Returns ``None`` if it does not exist."""
        record = cls._to_stored(data)
        logger.info("Updating user %s", record.get("id"))
        store = get_document_store()
        if not await run_in_threadpool(store.update, COLLECTION, record):
            return None
        return cls._public(record)

    @classmethod
    async def delete_user(cls, user_id: str) -> bool:
        logger.info("Deleting user %s", user_id)
        store = get_document_store()
        return await run_in_threadpool(store.delete, COLLECTION, user_id)

    @classmethod
    async def list_users(cls) -> List[Dict[str, Any]]:
        store = get_document_store()
        return [cls._public(record) for record in await run_in_threadpool(store.find_all, COLLECTION)]

    @classmethod
    async def find_by_username(cls, username: str) -> List[Dict[str, Any]]:
        """Return every user with this username, lowest id first."""
        evaluator = get_query_evaluator()
        records = await run_in_threadpool(evaluator.find, COLLECTION, "username", [username])
        return [cls._public(record) for record in records]

    @classmethod
    async def authenticate(cls, username: str, password: str) -> bool:
        """Check credentials against the built-in admin and stored users."""
        if is_builtin_admin(username, password):
            return True
        evaluator = get_query_evaluator()
        records = await run_in_threadpool(evaluator.find, COLLECTION, "username", [username])
        for record in records:
            if await run_in_threadpool(verify_password, password, record.get("password")):
                return True
        logger.warning("Invalid username or password for %s", username)
        return False
