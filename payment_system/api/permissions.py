from django.conf import settings
from rest_framework import permissions

from payment_system.security import get_client_ip


class IsStaffOrInternalService(permissions.BasePermission):
    """
    Allows staff users, or internal services (reconciliation jobs, ops tooling)
    calling from a whitelisted IP address.
    """

    def has_permission(self, request, view):
        if request.user and request.user.is_staff:
            return True

        return get_client_ip(request) in getattr(settings, "INTERNAL_SERVICE_IPS", [])


class IsSettlementParticipant(permissions.BasePermission):
    """Buyer, any paid seller, or staff may read a settlement."""

    def has_object_permission(self, request, view, obj):
        user = request.user
        if user.is_staff or obj.buyer_id == user.id:
            return True
        return obj.payouts.filter(seller_id=user.id).exists()
