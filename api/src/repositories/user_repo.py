"""
User repository for database operations.

Provides async operations on the ``users`` collection: lookup by email,
OTP lifecycle updates, verification and password setup.
"""

from datetime import datetime
from typing import Optional

import structlog
from pymongo import ASCENDING, ReturnDocument

from api.src.models.auth import Role, UserDB
from api.src.models.base import utc_now
from api.src.repositories.base import MongoRepository, to_object_id

logger = structlog.get_logger(__name__)


class UserRepository(MongoRepository[UserDB]):
    """Repository for user database operations."""

    collection_name = "users"
    model = UserDB

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("email", ASCENDING)], unique=True, name="uniq_email")
        await self.collection.create_index([("role", ASCENDING)], name="role")

    async def get_by_email(self, email: str) -> Optional[UserDB]:
        """
        Get user by email (case-insensitive, emails are stored lower-case).

        Args:
            email: Email address

        Returns:
            User or None if not found
        """
        doc = await self.collection.find_one({"email": email.strip().lower()})
        return self._from_doc(doc)

    async def create_user(
        self,
        name: str,
        email: str,
        role: Role,
        otp_hash: str,
        otp_expiry: datetime,
    ) -> UserDB:
        """
        Create an unverified user holding a pending OTP.

        Raises:
            ConflictError: If the email already exists
        """
        user = UserDB(
            name=name,
            email=email.strip().lower(),
            role=role,
            otp_hash=otp_hash,
            otp_expiry=otp_expiry,
        )
        user = await self.insert(user)
        logger.info("user_created", user_id=user.id, role=role.value)
        return user

    async def refresh_registration(
        self, user_id: str, name: str, role: Role, otp_hash: str, otp_expiry: datetime
    ) -> Optional[UserDB]:
        """Update name/role of an unverified user and store a new OTP."""
        return await self.update_fields(user_id, {
            "name": name,
            "role": role,
            "otp_hash": otp_hash,
            "otp_expiry": otp_expiry,
        })

    async def set_otp(self, user_id: str, otp_hash: str, otp_expiry: datetime) -> Optional[UserDB]:
        return await self.update_fields(user_id, {"otp_hash": otp_hash, "otp_expiry": otp_expiry})

    async def mark_verified(self, user_id: str, otp_hash: str) -> Optional[UserDB]:
        """
        Mark a user verified and consume the OTP.

        The update only applies while the stored OTP hash still matches, so a
        code can be used once.
        """
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(user_id), "otp_hash": otp_hash, "is_verified": False},
            {
                "$set": {"is_verified": True, "updated_at": utc_now()},
                "$unset": {"otp_hash": "", "otp_expiry": ""},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            logger.info("user_verified", user_id=user_id)
        return self._from_doc(doc)

    async def set_password_hash(self, user_id: str, password_hash: str) -> Optional[UserDB]:
        """Set the password only if none is set yet."""
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(user_id), "password_hash": None},
            {"$set": {"password_hash": password_hash, "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER,
        )
        return self._from_doc(doc)

    async def record_login(self, user_id: str) -> None:
        await self.collection.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {"last_login_at": utc_now()}},
        )
