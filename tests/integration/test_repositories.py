"""
Integration tests for MongoDB repositories.

Tests cover:
- Single-use OTP consumption and one-time password setup
- Unique email constraint
- Vendor profile upsert and atomic rating averages
- Bank account encryption at rest
- Monthly delivery counters rolling over, including concurrent deliveries
- Targeted partner writes keeping counters intact
- Audit log search with filters and pagination

These tests use testcontainers to spin up a real MongoDB instance.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from pymongo import AsyncMongoClient

from api.src.exceptions import ConflictError
from api.src.models.audit import AuditAction, AuditLogCreate, AuditLogFilter, AuditStatus, ResourceType
from api.src.models.auth import Role
from api.src.models.base import utc_now
from api.src.models.delivery_partner import DeliveryStats, VerificationAction, verification_decision
from api.src.repositories.audit_repo import AuditRepository
from api.src.repositories.delivery_partner_repo import DeliveryPartnerRepository
from api.src.repositories.user_repo import UserRepository
from api.src.repositories.vendor_repo import VendorRepository
from shared.security.crypto import ENCRYPTED_PREFIX
from tests.support.containers import get_mongodb_container
from tests.support.factories import make_partner, new_id

pytestmark = pytest.mark.integration


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(scope="module")
def mongo_url():
    """Start MongoDB container for the module."""
    return get_mongodb_container().get_connection_url()


@pytest_asyncio.fixture
async def db(mongo_url):
    """Fresh database per test, dropped afterwards."""
    client = AsyncMongoClient(mongo_url, tz_aware=True)
    name = f"food_test_{uuid.uuid4().hex[:8]}"
    database = client[name]
    yield database
    await client.drop_database(name)
    await client.close()


@pytest_asyncio.fixture
async def users(db):
    repo = UserRepository(db)
    await repo.ensure_indexes()
    return repo


# ============================================================================
# USERS
# ============================================================================


class TestUserRepository:
    """Tests for user accounts."""

    @pytest.mark.asyncio
    async def test_email_is_unique(self, users):
        expiry = utc_now() + timedelta(minutes=10)
        await users.create_user("Asha", "asha@example.com", Role.CUSTOMER, "hash", expiry)

        with pytest.raises(ConflictError):
            await users.create_user("Asha 2", "ASHA@example.com", Role.VENDOR, "hash", expiry)

    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, users):
        created = await users.create_user(
            "Asha", "Asha@Example.com", Role.CUSTOMER, "hash", utc_now() + timedelta(minutes=10)
        )

        found = await users.get_by_email(" ASHA@example.COM ")

        assert found.id == created.id
        assert found.email == "asha@example.com"
        assert found.otp_expiry.tzinfo is not None

    @pytest.mark.asyncio
    async def test_otp_consumed_once(self, users):
        user = await users.create_user(
            "Asha", "asha@example.com", Role.CUSTOMER, "otp-hash", utc_now() + timedelta(minutes=10)
        )

        verified = await users.mark_verified(user.id, "otp-hash")
        again = await users.mark_verified(user.id, "otp-hash")

        assert verified.is_verified
        assert verified.otp_hash is None
        assert verified.otp_expiry is None
        assert again is None

    @pytest.mark.asyncio
    async def test_stale_otp_hash_rejected(self, users):
        user = await users.create_user(
            "Asha", "asha@example.com", Role.CUSTOMER, "old-hash", utc_now() + timedelta(minutes=10)
        )
        await users.set_otp(user.id, "new-hash", utc_now() + timedelta(minutes=10))

        assert await users.mark_verified(user.id, "old-hash") is None

    @pytest.mark.asyncio
    async def test_password_set_once(self, users):
        user = await users.create_user(
            "Asha", "asha@example.com", Role.CUSTOMER, "otp-hash", utc_now() + timedelta(minutes=10)
        )

        first = await users.set_password_hash(user.id, "$2b$04$first")
        second = await users.set_password_hash(user.id, "$2b$04$second")

        assert first.password_hash == "$2b$04$first"
        assert second is None
        assert (await users.get_by_id(user.id)).password_hash == "$2b$04$first"


# ============================================================================
# VENDORS
# ============================================================================


class TestVendorRepository:
    @pytest.mark.asyncio
    async def test_upsert_keeps_open_status(self, db):
        vendors = VendorRepository(db)
        await vendors.ensure_indexes()
        user_id = new_id()

        created = await vendors.upsert_profile(user_id, {
            "restaurant_name": "Spice Route", "city": "Bengaluru", "delivery_pincodes": ["560001"],
        })
        await vendors.set_open_status(user_id, False, "Renovation")
        updated = await vendors.upsert_profile(user_id, {"restaurant_name": "Spice Route Express"})

        assert created.is_open
        assert updated.id == created.id
        assert updated.restaurant_name == "Spice Route Express"
        assert updated.city == "Bengaluru"
        assert not updated.is_open
        assert updated.closure_reason == "Renovation"

    @pytest.mark.asyncio
    async def test_opening_clears_closure_reason(self, db):
        vendors = VendorRepository(db)
        user_id = new_id()
        await vendors.upsert_profile(user_id, {"restaurant_name": "Spice Route"})

        await vendors.set_open_status(user_id, False, "Renovation")
        reopened = await vendors.set_open_status(user_id, True, "ignored")

        assert reopened.is_open
        assert reopened.closure_reason is None

    @pytest.mark.asyncio
    async def test_rating_average(self, db):
        vendors = VendorRepository(db)
        vendor = await vendors.upsert_profile(new_id(), {"restaurant_name": "Spice Route"})

        for score in (5, 4, 4):
            await vendors.add_rating(vendor.id, score)

        rating = (await vendors.get_by_id(vendor.id)).rating
        assert rating.total_ratings == 3
        assert rating.average == 4.33


# ============================================================================
# DELIVERY PARTNERS
# ============================================================================


class TestDeliveryPartnerRepository:
    @pytest.mark.asyncio
    async def test_account_number_encrypted_at_rest(self, db):
        partners = DeliveryPartnerRepository(db)
        partner = await partners.insert(make_partner(id=None))

        raw = await db["delivery_partners"].find_one({"user_id": partner.user_id})
        stored = raw["bank_details"]["account_number"]

        assert stored.startswith(ENCRYPTED_PREFIX)
        assert "123456789012" not in stored
        assert (await partners.get_by_id(partner.id)).bank_details.account_number == "123456789012"

    @pytest.mark.asyncio
    async def test_monthly_counters_roll_over(self, db):
        partners = DeliveryPartnerRepository(db)
        partner = await partners.insert(make_partner(id=None, delivery_stats=DeliveryStats(
            completed_deliveries=10,
            total_earnings=250.0,
            this_month_deliveries=4,
            this_month_earnings=100.0,
            stats_month="2026-09",
        )))

        same_month = await partners.record_delivery(partner.id, 20.0, "2026-09")
        assert same_month.delivery_stats.this_month_deliveries == 5
        assert same_month.delivery_stats.this_month_earnings == 120.0

        next_month = await partners.record_delivery(partner.id, 35.0, "2026-10")
        stats = next_month.delivery_stats
        assert stats.completed_deliveries == 12
        assert stats.total_earnings == 305.0
        assert stats.this_month_deliveries == 1
        assert stats.this_month_earnings == 35.0
        assert stats.stats_month == "2026-10"

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_in_new_month(self, db):
        partners = DeliveryPartnerRepository(db)
        partner = await partners.insert(make_partner(id=None, delivery_stats=DeliveryStats(
            completed_deliveries=3, this_month_deliveries=3, stats_month="2026-09",
        )))

        await asyncio.gather(*(partners.record_delivery(partner.id, 25.0, "2026-10") for _ in range(2)))

        stats = (await partners.get_by_id(partner.id)).delivery_stats
        assert stats.completed_deliveries == 5
        assert stats.this_month_deliveries == 2
        assert stats.this_month_earnings == 50.0
        assert stats.stats_month == "2026-10"

    @pytest.mark.asyncio
    async def test_verification_keeps_concurrent_delivery(self, db):
        partners = DeliveryPartnerRepository(db)
        partner = await partners.insert(make_partner(id=None))
        fields, entry = verification_decision(new_id(), "Spice Route", VerificationAction.APPROVE)

        await asyncio.gather(
            partners.record_verification(partner.id, fields, entry),
            partners.record_delivery(partner.id, 40.0, "2026-10"),
            partners.increment_cancellations(partner.id),
        )

        stored = await partners.get_by_id(partner.id)
        assert stored.is_verified
        assert len(stored.verification_history) == 1
        assert stored.delivery_stats.completed_deliveries == 1
        assert stored.delivery_stats.total_earnings == 40.0
        assert stored.delivery_stats.cancelled_deliveries == 1

    @pytest.mark.asyncio
    async def test_profile_update_keeps_counters(self, db):
        partners = DeliveryPartnerRepository(db)
        partner = await partners.insert(make_partner(id=None))
        await partners.record_delivery(partner.id, 30.0, "2026-10")
        await partners.add_rating(partner.id, 5)

        bank = partner.bank_details.model_copy(update={"account_number": "987654321098"})
        updated = await partners.update_profile(partner.id, {
            "full_name": "Ravi K", "bank_details": bank.model_dump(),
        })

        assert updated.full_name == "Ravi K"
        assert updated.delivery_stats.completed_deliveries == 1
        assert updated.rating.total_ratings == 1
        assert updated.bank_details.account_number == "987654321098"
        raw = await db["delivery_partners"].find_one({"user_id": partner.user_id})
        assert raw["bank_details"]["account_number"].startswith(ENCRYPTED_PREFIX)

    @pytest.mark.asyncio
    async def test_dispatchable_filter(self, db):
        partners = DeliveryPartnerRepository(db)
        await partners.ensure_indexes()
        ready = await partners.insert(make_partner(
            id=None, is_available=True, is_verified=True, verification_status="approved",
        ))
        await partners.insert(make_partner(id=None, is_available=True))
        await partners.insert(make_partner(
            id=None, is_available=True, is_verified=True, verification_status="approved",
            delivery_zones=["110001"],
        ))

        found = await partners.list_dispatchable(["560001", "560002"])

        assert [p.id for p in found] == [ready.id]


# ============================================================================
# AUDIT LOG
# ============================================================================


class TestAuditRepository:
    @pytest.mark.asyncio
    async def test_filter_and_paginate(self, db):
        audit = AuditRepository(db)
        await audit.ensure_indexes()
        user_id = new_id()
        for i in range(3):
            await audit.create_audit_log(AuditLogCreate(
                user_id=user_id,
                action=AuditAction.ORDER_PLACE,
                resource_type=ResourceType.ORDER,
                resource_path="/api/customer/orders",
                method="POST",
                status_code=201,
                status=AuditStatus.SUCCESS,
                duration_ms=i,
            ))
        await audit.create_audit_log(AuditLogCreate(
            action=AuditAction.LOGIN_FAILURE,
            resource_type=ResourceType.AUTH,
            resource_path="/api/auth/login",
            method="POST",
            status_code=401,
            status=AuditStatus.FAILURE,
        ))

        logs, total = await audit.list_audit_logs(AuditLogFilter(user_id=user_id), skip=0, limit=2)

        assert total == 3
        assert len(logs) == 2
        assert all(log.action == AuditAction.ORDER_PLACE for log in logs)
