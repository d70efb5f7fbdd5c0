"""
Unit tests for vendor-side partner verification.

Tests cover:
- Status filters and pagination arithmetic
- Vendors without delivery pincodes
- Area checks before approve/reject
- Partner details and the available-partner email join
"""

from unittest.mock import AsyncMock

import pytest

from api.src.exceptions import BadRequestError, NotFoundError, PermissionDeniedError
from api.src.models.auth import Role, UserDB
from api.src.models.delivery_partner import (
    VerificationAction,
    VerificationHistoryEntry,
    VerificationStatus,
    VerifyPartnerRequest,
)
from api.src.services.verification_service import PartnerVerificationService
from tests.support.factories import make_approved_partner, make_partner, make_user, make_vendor, new_id


@pytest.fixture
def repos():
    return {
        "partner_repo": AsyncMock(),
        "vendor_repo": AsyncMock(),
        "user_repo": AsyncMock(),
    }


@pytest.fixture
def service(repos):
    return PartnerVerificationService(**repos)


@pytest.fixture
def vendor_user():
    return make_user(Role.VENDOR)


@pytest.fixture
def vendor(repos, vendor_user):
    profile = make_vendor(user_id=vendor_user.id)
    repos["vendor_repo"].get_by_user_id.return_value = profile
    return profile


# ============================================================================
# LISTING
# ============================================================================


class TestListPartners:
    @pytest.mark.asyncio
    async def test_pending_includes_in_review(self, service, repos, vendor_user, vendor):
        repos["partner_repo"].list_for_verification.return_value = ([], 0)

        await service.list_partners(vendor_user, "pending")

        zones, statuses = repos["partner_repo"].list_for_verification.await_args.args
        assert zones == ["560001", "560002"]
        assert statuses == [VerificationStatus.PENDING, VerificationStatus.IN_REVIEW]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [
        ("verified", [VerificationStatus.APPROVED]),
        ("rejected", [VerificationStatus.REJECTED]),
        ("all", None),
    ])
    async def test_status_filters(self, service, repos, vendor_user, vendor, status, expected):
        repos["partner_repo"].list_for_verification.return_value = ([], 0)

        await service.list_partners(vendor_user, status)

        assert repos["partner_repo"].list_for_verification.await_args.args[1] == expected

    @pytest.mark.asyncio
    async def test_unknown_status(self, service, repos, vendor_user, vendor):
        with pytest.raises(BadRequestError, match="Invalid status"):
            await service.list_partners(vendor_user, "approved")

        repos["partner_repo"].list_for_verification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pagination(self, service, repos, vendor_user, vendor):
        partner = make_partner()
        repos["partner_repo"].list_for_verification.return_value = ([partner], 21)

        result = await service.list_partners(vendor_user, "all", page=3, limit=10)

        kwargs = repos["partner_repo"].list_for_verification.await_args.kwargs
        assert kwargs == {"skip": 20, "limit": 10}
        assert result["pagination"] == {"page": 3, "limit": 10, "total": 21, "pages": 3}
        assert result["partners"][0]["id"] == partner.id
        assert "bank_details" not in result["partners"][0]

    @pytest.mark.asyncio
    async def test_vendor_without_pincodes(self, service, repos, vendor_user):
        repos["vendor_repo"].get_by_user_id.return_value = make_vendor(
            user_id=vendor_user.id, pincode="", delivery_pincodes=[]
        )

        result = await service.list_partners(vendor_user, page=2, limit=5)

        assert result["partners"] == []
        assert result["pagination"] == {"page": 2, "limit": 5, "total": 0, "pages": 0}
        assert result["message"] == "Add delivery pincodes to your profile to see delivery partners"
        repos["partner_repo"].list_for_verification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_vendor_profile(self, service, repos, vendor_user):
        repos["vendor_repo"].get_by_user_id.return_value = None

        with pytest.raises(NotFoundError, match="Vendor profile not found"):
            await service.list_partners(vendor_user)


class TestListAvailable:
    @pytest.mark.asyncio
    async def test_joins_account_email(self, service, repos, vendor_user, vendor):
        known = make_approved_partner()
        orphan = make_approved_partner()
        repos["partner_repo"].list_dispatchable.return_value = [known, orphan]
        repos["user_repo"].get_many.return_value = [UserDB(
            id=known.user_id, name="Ravi Kumar", email="ravi@example.com", role=Role.DELIVERY_PARTNER,
        )]

        result = await service.list_available(vendor_user)

        repos["user_repo"].get_many.assert_awaited_once_with([known.user_id, orphan.user_id])
        assert [p["email"] for p in result] == ["ravi@example.com", None]
        assert all("bank_details" not in p for p in result)

    @pytest.mark.asyncio
    async def test_no_pincodes_lists_nothing(self, service, repos, vendor_user):
        repos["vendor_repo"].get_by_user_id.return_value = make_vendor(
            user_id=vendor_user.id, pincode="", delivery_pincodes=[]
        )

        assert await service.list_available(vendor_user) == []
        repos["partner_repo"].list_dispatchable.assert_not_awaited()


# ============================================================================
# VERIFICATION
# ============================================================================


class TestVerifyPartner:
    @pytest.mark.asyncio
    async def test_approve_records_decision(self, service, repos, vendor_user, vendor):
        partner = make_partner()
        repos["partner_repo"].get_by_id.return_value = partner
        repos["partner_repo"].record_verification.return_value = partner.model_copy(update={
            "is_verified": True, "verification_status": VerificationStatus.APPROVED,
        })

        summary = await service.verify_partner(
            vendor_user, VerifyPartnerRequest(partner_id=partner.id, action=VerificationAction.APPROVE)
        )

        partner_id, fields, entry = repos["partner_repo"].record_verification.await_args.args
        assert partner_id == partner.id
        assert fields["verified_by"]["vendor_id"] == vendor.id
        assert entry.vendor_name == "Spice Route"
        assert summary["status"] == "approved"
        repos["partner_repo"].save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_outside_delivery_area(self, service, repos, vendor_user, vendor):
        partner = make_partner(delivery_zones=["110001"])
        repos["partner_repo"].get_by_id.return_value = partner

        with pytest.raises(PermissionDeniedError, match="your delivery areas"):
            await service.verify_partner(
                vendor_user, VerifyPartnerRequest(partner_id=partner.id, action=VerificationAction.APPROVE)
            )

        repos["partner_repo"].record_verification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_partner_id(self, service, repos, vendor_user, vendor):
        with pytest.raises(BadRequestError, match="Invalid delivery partner ID"):
            await service.verify_partner(
                vendor_user, VerifyPartnerRequest(partner_id="not-an-id", action=VerificationAction.REJECT)
            )

        repos["partner_repo"].get_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_partner(self, service, repos, vendor_user, vendor):
        repos["partner_repo"].get_by_id.return_value = None

        with pytest.raises(NotFoundError, match="Delivery partner not found"):
            await service.verify_partner(
                vendor_user, VerifyPartnerRequest(partner_id=new_id(), action=VerificationAction.REJECT)
            )

    @pytest.mark.asyncio
    async def test_partner_removed_during_update(self, service, repos, vendor_user, vendor):
        partner = make_partner()
        repos["partner_repo"].get_by_id.return_value = partner
        repos["partner_repo"].record_verification.return_value = None

        with pytest.raises(NotFoundError):
            await service.verify_partner(
                vendor_user, VerifyPartnerRequest(partner_id=partner.id, action=VerificationAction.REJECT)
            )


class TestPartnerDetails:
    @pytest.mark.asyncio
    async def test_details(self, service, repos, vendor_user, vendor):
        history = [VerificationHistoryEntry(
            vendor_id=new_id(), vendor_name="Dosa Corner", action=VerificationAction.REJECT, reason="Blurry licence",
        )]
        partner = make_partner(verification_history=history)
        repos["partner_repo"].get_by_id.return_value = partner

        details = await service.partner_details(vendor_user, partner.id)

        assert details["partner"]["id"] == partner.id
        assert "bank_details" not in details["partner"]
        assert details["completion"].is_complete
        assert details["verification_history"] == history

    @pytest.mark.asyncio
    async def test_details_outside_area(self, service, repos, vendor_user, vendor):
        repos["partner_repo"].get_by_id.return_value = make_partner(delivery_zones=["400001"])

        with pytest.raises(PermissionDeniedError):
            await service.partner_details(vendor_user, new_id())
