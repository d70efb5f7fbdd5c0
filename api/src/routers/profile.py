"""
Customer profile router.

Provides REST API endpoints for:
- Reading (auto-created) and updating the caller's profile
- Listing, adding and removing saved delivery addresses
"""

from typing import List

from fastapi import APIRouter, Depends, status

from api.src.dependencies import get_customer_profile_service, require_customer
from api.src.models.auth import CurrentUser
from api.src.models.base import ErrorResponse
from api.src.models.customer import (
    Address,
    AddressCreate,
    AddressResponse,
    CustomerProfile,
    CustomerProfileUpdate,
)
from api.src.services.customer_profile_service import CustomerProfileService

router = APIRouter(
    prefix="/profile",
    tags=["Customer Profile"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
    },
)


@router.get("/me", response_model=CustomerProfile, summary="My Profile")
async def get_profile(
    current_user: CurrentUser = Depends(require_customer),
    profiles: CustomerProfileService = Depends(get_customer_profile_service),
) -> CustomerProfile:
    """Return the caller's profile, creating it from the account on first access."""
    return await profiles.get_or_create(current_user)


@router.put("/me", response_model=CustomerProfile, summary="Update Profile")
async def update_profile(
    body: CustomerProfileUpdate,
    current_user: CurrentUser = Depends(require_customer),
    profiles: CustomerProfileService = Depends(get_customer_profile_service),
) -> CustomerProfile:
    return await profiles.update(current_user, body)


@router.get("/addresses", response_model=List[Address], summary="Saved Addresses")
async def list_addresses(
    current_user: CurrentUser = Depends(require_customer),
    profiles: CustomerProfileService = Depends(get_customer_profile_service),
) -> List[Address]:
    return await profiles.list_addresses(current_user)


@router.post(
    "/addresses",
    response_model=AddressResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Address",
)
async def add_address(
    body: AddressCreate,
    current_user: CurrentUser = Depends(require_customer),
    profiles: CustomerProfileService = Depends(get_customer_profile_service),
) -> AddressResponse:
    """Save an address; the first one, or one flagged default, becomes the default."""
    address, profile = await profiles.add_address(current_user, body)
    return AddressResponse(
        message="Address added successfully",
        address=address,
        completion=profile.profile_completion,
    )


@router.delete(
    "/addresses/{address_id}",
    response_model=CustomerProfile,
    summary="Remove Address",
    responses={404: {"model": ErrorResponse, "description": "Address not found"}},
)
async def delete_address(
    address_id: str,
    current_user: CurrentUser = Depends(require_customer),
    profiles: CustomerProfileService = Depends(get_customer_profile_service),
) -> CustomerProfile:
    return await profiles.delete_address(current_user, address_id)
