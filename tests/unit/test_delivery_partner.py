"""
Unit tests for delivery partner profiles.

Tests cover:
- Profile completion scoring
- Vendor verification (approve/reject, zone overlap, history)
- Partial profile updates merging nested objects
- Availability gated on profile completion
- Week boundaries for the dashboard
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from api.src.exceptions import BadRequestError
from api.src.models.auth import Role
from api.src.models.delivery_partner import (
    BankDetailsUpdate,
    DeliveryPartner,
    PartnerAddressUpdate,
    PartnerProfileUpdate,
    VerificationAction,
    VerificationHistoryEntry,
    VerificationRecord,
    VerificationStatus,
    verification_decision,
)
from api.src.services.delivery_partner_service import DeliveryPartnerService, start_of_week
from api.src.services.verification_service import partner_public_view
from tests.support.factories import make_partner, make_user


# ============================================================================
# COMPLETION
# ============================================================================


class TestProfileCompletion:
    """Tests for completion scoring."""

    def test_empty_profile(self):
        partner = DeliveryPartner(user_id="u1")
        completion = partner.calculate_completion()

        # default working hours count, nothing else does
        assert completion.total_required == 15
        assert completion.completed_fields == 1
        assert completion.percentage == 7
        assert not completion.is_complete
        assert "Full Name" in completion.missing_fields
        assert "Delivery Zones" in completion.missing_fields
        assert "Working Hours" not in completion.missing_fields

    def test_complete_profile(self):
        completion = make_partner().calculate_completion()
        assert completion.percentage == 100
        assert completion.is_complete
        assert completion.missing_fields == []

    def test_no_working_days_is_missing(self):
        partner = make_partner()
        for hours in partner.working_hours:
            hours.is_working = False
        completion = partner.calculate_completion()
        assert completion.missing_fields == ["Working Hours"]
        assert completion.percentage == 93

    def test_threshold(self):
        partner = make_partner(delivery_zones=[])
        assert partner.calculate_completion(complete_threshold=90).is_complete
        assert not partner.calculate_completion(complete_threshold=95).is_complete

    def test_blank_zones_are_dropped(self):
        partner = DeliveryPartner(user_id="u1", delivery_zones=[" 560001 ", "", "  "])
        assert partner.delivery_zones == ["560001"]


# ============================================================================
# VERIFICATION
# ============================================================================


class TestVerification:
    """Tests for vendor approve/reject decisions."""

    def test_zone_overlap(self):
        partner = make_partner(delivery_zones=["560001", "560034"])
        assert partner.can_be_verified_by(["560034"])
        assert not partner.can_be_verified_by(["400001"])
        assert not partner.can_be_verified_by([])

    def test_approve(self):
        fields, entry = verification_decision("v1", "Spice Route", VerificationAction.APPROVE)

        assert fields["is_verified"] is True
        assert fields["verification_status"] == VerificationStatus.APPROVED
        assert fields["verified_by"]["vendor_id"] == "v1"
        assert fields["rejected_by"] is None
        assert entry.action == VerificationAction.APPROVE
        assert entry.reason is None

    def test_reject_clears_approval(self):
        fields, entry = verification_decision("v2", "Dosa Corner", VerificationAction.REJECT)

        assert fields["is_verified"] is False
        assert fields["verification_status"] == VerificationStatus.REJECTED
        assert fields["verified_by"] is None
        assert fields["rejected_by"]["reason"] == "No reason provided"
        assert entry.reason == "No reason provided"

    def test_only_verification_fields_are_written(self):
        fields, _ = verification_decision("v1", "Spice Route", VerificationAction.REJECT, "Blurry licence")
        assert set(fields) == {"is_verified", "verification_status", "verified_by", "rejected_by"}

    def test_summary(self):
        partner = make_partner(
            verification_status=VerificationStatus.REJECTED,
            rejected_by=VerificationRecord(vendor_id="v1", vendor_name="Spice Route", reason="Blurry licence"),
            verification_history=[VerificationHistoryEntry(
                vendor_id="v1", vendor_name="Spice Route", action=VerificationAction.REJECT,
                reason="Blurry licence",
            )],
        )
        summary = partner.verification_summary()
        assert summary["status"] == "rejected"
        assert summary["rejected_by"]["reason"] == "Blurry licence"
        assert summary["history_count"] == 1

    def test_public_view_hides_bank_details(self):
        view = partner_public_view(make_partner())
        assert "bank_details" not in view
        assert view["full_name"] == "Ravi Kumar"


# ============================================================================
# SERVICE
# ============================================================================


def _stored(partner):
    """Profile update that applies the written fields to ``partner``."""

    def update_profile(partner_id, fields):
        assert partner_id == partner.id
        return DeliveryPartner.model_validate({**partner.model_dump(), **fields})

    return update_profile


@pytest.fixture
def partner_repo():
    repo = AsyncMock()
    repo.insert.side_effect = lambda p: p.model_copy(update={"id": "p-new"})
    return repo


@pytest.fixture
def service(partner_repo):
    return DeliveryPartnerService(partner_repo, AsyncMock())


class TestDeliveryPartnerService:
    """Tests for profile updates and availability."""

    @pytest.mark.asyncio
    async def test_profile_created_on_first_access(self, service, partner_repo):
        partner_repo.get_by_user_id.return_value = None
        user = make_user(Role.DELIVERY_PARTNER, name="Ravi Kumar")

        partner = await service.get_or_create_profile(user)

        assert partner.id == "p-new"
        assert partner.full_name == "Ravi Kumar"
        partner_repo.insert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_merges_nested_fields(self, service, partner_repo):
        existing = make_partner()
        partner_repo.get_by_user_id.return_value = existing
        partner_repo.update_profile.side_effect = _stored(existing)
        user = make_user(Role.DELIVERY_PARTNER, id=existing.user_id)

        updated = await service.update_profile(user, PartnerProfileUpdate(
            full_name="  Ravi K  ",
            address=PartnerAddressUpdate(city="Mysuru", street=""),
            bank_details=BankDetailsUpdate(ifsc_code="hdfc0000001"),
            delivery_zones=[" 570001 ", ""],
        ))

        assert updated.full_name == "Ravi K"
        assert updated.address.city == "Mysuru"
        assert updated.address.street == "4 Church Street"
        assert updated.bank_details.ifsc_code == "HDFC0000001"
        assert updated.bank_details.account_number == "123456789012"
        assert updated.delivery_zones == ["570001"]
        assert updated.is_profile_complete

    @pytest.mark.asyncio
    async def test_update_writes_only_profile_fields(self, service, partner_repo):
        existing = make_partner()
        partner_repo.get_by_user_id.return_value = existing
        partner_repo.update_profile.side_effect = _stored(existing)

        await service.update_profile(
            make_user(Role.DELIVERY_PARTNER, id=existing.user_id),
            PartnerProfileUpdate(mobile_no="9000000001", address=PartnerAddressUpdate(city="Mysuru")),
        )

        partner_id, fields = partner_repo.update_profile.await_args.args
        assert partner_id == existing.id
        assert set(fields) == {"mobile_no", "address", "is_profile_complete"}
        assert fields["address"]["city"] == "Mysuru"
        partner_repo.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_completion_recalculated_on_update(self, service, partner_repo):
        existing = DeliveryPartner(id="p1", user_id="u1")
        partner_repo.get_by_user_id.return_value = existing
        partner_repo.update_profile.side_effect = _stored(existing)
        user = make_user(Role.DELIVERY_PARTNER, id="u1")

        updated = await service.update_profile(user, PartnerProfileUpdate(full_name="Ravi"))

        assert not updated.is_profile_complete
        assert partner_repo.update_profile.await_args.args[1]["is_profile_complete"] is False

    @pytest.mark.asyncio
    async def test_availability_requires_completion(self, service, partner_repo):
        partner_repo.get_by_user_id.return_value = DeliveryPartner(id="p1", user_id="u1", full_name="Ravi")
        user = make_user(Role.DELIVERY_PARTNER, id="u1")

        with pytest.raises(BadRequestError) as exc_info:
            await service.set_availability(user, True)

        assert exc_info.value.extra["completion"]["percentage"] < 80
        partner_repo.set_availability.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_going_unavailable_is_always_allowed(self, service, partner_repo):
        partner = DeliveryPartner(id="p1", user_id="u1")
        partner_repo.get_by_user_id.return_value = partner
        partner_repo.set_availability.return_value = partner

        await service.set_availability(make_user(Role.DELIVERY_PARTNER, id="u1"), False)

        partner_repo.set_availability.assert_awaited_once_with("p1", False)

    @pytest.mark.asyncio
    async def test_complete_profile_can_go_available(self, service, partner_repo):
        partner = make_partner()
        partner_repo.get_by_user_id.return_value = partner
        partner_repo.set_availability.return_value = partner.model_copy(update={"is_available": True})

        result = await service.set_availability(make_user(Role.DELIVERY_PARTNER), True)

        assert result.is_available


# ============================================================================
# DATES
# ============================================================================


class TestWeekBoundary:
    def test_week_starts_on_sunday(self):
        wednesday = datetime(2024, 3, 13, 15, 30, tzinfo=timezone.utc)
        assert start_of_week(wednesday) == datetime(2024, 3, 10, tzinfo=timezone.utc)

    def test_sunday_is_its_own_start(self):
        sunday = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
        assert start_of_week(sunday) == datetime(2024, 3, 10, tzinfo=timezone.utc)
