"""
Dispatch service: assigning ready orders to delivery partners and the
partner side of the order workflow.

Every status change is a compare-and-set through
``OrderRepository.transition``; a write that no longer matches the expected
state is reported as a conflict instead of overwriting a concurrent change.
"""

from typing import Any, Dict, List, Optional

import structlog

from api.src.config import get_settings
from api.src.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from api.src.models.auth import CurrentUser
from api.src.models.base import is_object_id, utc_now
from api.src.models.delivery_partner import DeliveryPartner, VerificationStatus
from api.src.models.order import (
    PARTNER_ACTIVE_STATUSES,
    PARTNER_TRANSITIONS,
    AssignDeliveryRequest,
    DeliveryRejection,
    Order,
    OrderStatus,
    PartnerAction,
    TransitionActor,
)
from api.src.repositories.delivery_partner_repo import DeliveryPartnerRepository
from api.src.repositories.order_repo import OrderRepository
from api.src.repositories.vendor_repo import VendorRepository
from api.src.services.order_service import CONCURRENT_UPDATE_MESSAGE
from shared.metrics import setup_metrics
from shared.tracing import trace_function

logger = structlog.get_logger(__name__)

ORDER_LIST_TYPES = ("available", "assigned", "active", "completed", "all")


class DispatchService:
    """Service for delivery assignment and partner order actions."""

    def __init__(
        self,
        order_repo: OrderRepository,
        vendor_repo: VendorRepository,
        partner_repo: DeliveryPartnerRepository,
    ):
        self.order_repo = order_repo
        self.vendor_repo = vendor_repo
        self.partner_repo = partner_repo
        self.settings = get_settings()
        self.metrics = setup_metrics()

    def _record_transition(self, from_status: OrderStatus, to_status: OrderStatus, actor: TransitionActor) -> None:
        self.metrics.status_transitions.labels(
            from_status=from_status.value, to_status=to_status.value, actor=actor.value
        ).inc()

    def _conflict(self, actor: TransitionActor) -> ConflictError:
        self.metrics.transition_conflicts.labels(actor=actor.value).inc()
        return ConflictError(CONCURRENT_UPDATE_MESSAGE)

    async def require_partner(self, user: CurrentUser) -> DeliveryPartner:
        partner = await self.partner_repo.get_by_user_id(user.id)
        if partner is None:
            raise NotFoundError("Delivery partner profile not found")
        return partner

    # ========================================================================
    # Vendor: assignment
    # ========================================================================

    @trace_function("dispatch.assign")
    async def assign_delivery_partner(self, user: CurrentUser, request: AssignDeliveryRequest) -> Order:
        """
        Assign a ready order to a delivery partner.

        Raises:
            BadRequestError: Invalid ids, order not ready or already assigned,
                partner not eligible or previously rejected this order
            NotFoundError: Vendor profile, order or partner missing
            PermissionDeniedError: Order belongs to another vendor
            ConflictError: Order changed between read and write
        """
        if not is_object_id(request.order_id) or not is_object_id(request.delivery_partner_id):
            raise BadRequestError("Invalid order or delivery partner ID")

        vendor = await self.vendor_repo.get_by_user_id(user.id)
        if vendor is None:
            raise NotFoundError("Vendor profile not found")
        order = await self.order_repo.get_by_id(request.order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.vendor_id != vendor.id:
            raise PermissionDeniedError("Unauthorized to access this order")
        if order.status != OrderStatus.READY:
            raise BadRequestError("Order must be ready before assigning delivery")
        if order.partner_id is not None:
            raise BadRequestError("Order already has a delivery partner")

        partner = await self.partner_repo.get_by_id(request.delivery_partner_id)
        if partner is None:
            raise NotFoundError("Delivery partner not found")
        if not partner.is_available:
            self.metrics.delivery_assignments.labels(outcome="rejected").inc()
            raise BadRequestError("Delivery partner is not available")
        if not partner.is_verified or partner.verification_status != VerificationStatus.APPROVED:
            self.metrics.delivery_assignments.labels(outcome="rejected").inc()
            raise BadRequestError("Delivery partner is not verified")
        if not partner.can_be_verified_by(vendor.service_pincodes()):
            self.metrics.delivery_assignments.labels(outcome="rejected").inc()
            raise BadRequestError("Delivery partner does not serve your delivery areas")
        if order.delivery_details.was_rejected_by(partner.id):
            self.metrics.delivery_assignments.labels(outcome="rejected").inc()
            raise BadRequestError("Delivery partner has already rejected this order")

        now = utc_now()
        updated = await self.order_repo.transition(
            order.id,
            OrderStatus.READY,
            OrderStatus.ASSIGNED,
            expected_partner_id=None,
            extra_filter={"vendor_id": vendor.id},
            set_fields={
                "delivery_details.partner_id": partner.id,
                "delivery_details.partner_name": partner.full_name,
                "delivery_details.partner_phone": partner.mobile_no,
                "delivery_details.assigned_at": now,
            },
            now=now,
        )
        if updated is None:
            self.metrics.delivery_assignments.labels(outcome="conflict").inc()
            raise self._conflict(TransitionActor.VENDOR)

        self.metrics.delivery_assignments.labels(outcome="assigned").inc()
        self._record_transition(OrderStatus.READY, OrderStatus.ASSIGNED, TransitionActor.VENDOR)
        logger.info("delivery_assigned", order_id=order.id, partner_id=partner.id, vendor_id=vendor.id)
        return updated

    # ========================================================================
    # Partner: actions
    # ========================================================================

    @trace_function("dispatch.partner_action")
    async def apply_partner_action(
        self,
        user: CurrentUser,
        order_id: str,
        action: PartnerAction,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Apply a partner action to an order assigned to the caller.

        Raises:
            BadRequestError: Invalid id, order not assigned to the caller or in
                the wrong status for the action
            NotFoundError: Partner profile or order missing
            ConflictError: Order changed between read and write
        """
        if not is_object_id(order_id):
            raise BadRequestError("Invalid order ID")
        partner = await self.require_partner(user)
        order = await self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.partner_id != partner.id:
            raise BadRequestError("Order not assigned to you")

        expected, target, status_error = PARTNER_TRANSITIONS[action]
        if order.status != expected:
            raise BadRequestError(status_error)

        now = utc_now()
        set_fields: Dict[str, Any] = {}
        unset_fields: Optional[List[str]] = None
        push: Optional[Dict[str, Any]] = None

        if action == PartnerAction.ACCEPT:
            set_fields["delivery_details.accepted_at"] = now
        elif action == PartnerAction.REJECT:
            rejection = DeliveryRejection(
                partner_id=partner.id, rejected_at=now, reason=reason or "Not specified"
            )
            push = {"delivery_details.rejected_by": rejection.model_dump()}
            set_fields.update({
                "delivery_details.partner_id": None,
                "delivery_details.partner_name": "",
                "delivery_details.partner_phone": "",
            })
            unset_fields = ["delivery_details.assigned_at", "timestamps.assigned_at"]
        elif action == PartnerAction.PICKUP:
            set_fields["delivery_details.actual_pickup_time"] = now

        updated = await self.order_repo.transition(
            order.id,
            expected,
            target,
            expected_partner_id=partner.id,
            set_fields=set_fields,
            unset_fields=unset_fields,
            push=push,
            now=now,
        )
        if updated is None:
            raise self._conflict(TransitionActor.DELIVERY_PARTNER)

        if action == PartnerAction.PICKUP:
            await self.partner_repo.increment_pickups(partner.id)
        elif action == PartnerAction.DELIVER:
            await self.partner_repo.record_delivery(
                partner.id, order.delivery_details.partner_earnings, now.strftime("%Y-%m")
            )
        elif action == PartnerAction.REJECT:
            await self.partner_repo.increment_cancellations(partner.id)
            self.metrics.delivery_assignments.labels(outcome="declined").inc()

        self._record_transition(expected, target, TransitionActor.DELIVERY_PARTNER)
        logger.info(
            "partner_order_action",
            order_id=order.id,
            partner_id=partner.id,
            action=action.value,
            status=target.value,
        )
        return updated

    # ========================================================================
    # Partner: order lists
    # ========================================================================

    def _available_query(self, partner: DeliveryPartner) -> Dict[str, Any]:
        return {
            "status": OrderStatus.READY.value,
            "delivery_details.partner_id": None,
            "delivery_details.rejected_by.partner_id": {"$ne": partner.id},
        }

    def _mine(self, partner: DeliveryPartner, statuses: List[OrderStatus]) -> Dict[str, Any]:
        return {
            "delivery_details.partner_id": partner.id,
            "status": {"$in": [s.value for s in statuses]},
        }

    async def list_partner_orders(self, user: CurrentUser, list_type: str = "available") -> Dict[str, Any]:
        """
        Orders visible to a partner by list type, with counts for each list.

        Raises:
            BadRequestError: Unknown list type
        """
        if list_type not in ORDER_LIST_TYPES:
            raise BadRequestError(
                f"Invalid order type. Use one of: {', '.join(ORDER_LIST_TYPES)}"
            )
        partner = await self.require_partner(user)
        settings = self.settings

        available_query = self._available_query(partner)
        assigned_query = self._mine(partner, [OrderStatus.ASSIGNED])
        active_query = self._mine(partner, list(PARTNER_ACTIVE_STATUSES))
        completed_query = self._mine(partner, [OrderStatus.DELIVERED])

        if list_type == "available":
            orders = await self.order_repo.list_orders(
                available_query,
                sort=[("timestamps.ready_at", 1)],
                limit=settings.partner_available_orders_limit,
            )
        elif list_type == "assigned":
            orders = await self.order_repo.list_orders(assigned_query)
        elif list_type == "active":
            orders = await self.order_repo.list_orders(active_query)
        elif list_type == "completed":
            orders = await self.order_repo.list_orders(
                completed_query,
                sort=[("timestamps.delivered_at", -1)],
                limit=settings.partner_completed_orders_limit,
            )
        else:
            orders = await self.order_repo.list_orders(
                {"delivery_details.partner_id": partner.id},
                limit=settings.partner_all_orders_limit,
            )

        stats = {
            "available": await self.order_repo.count(available_query),
            "assigned": await self.order_repo.count(assigned_query),
            "active": await self.order_repo.count(active_query),
            "completed": await self.order_repo.count(completed_query),
        }
        return {"orders": orders, "stats": stats, "type": list_type}
