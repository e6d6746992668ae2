import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from payment_system.api.permissions import IsSettlementParticipant, IsStaffOrInternalService
from payment_system.api.serializers.request_serializers import SettlementListQuerySerializer
from payment_system.api.serializers.response_serializers import (
    ReconciliationResponseSerializer,
    SettlementDetailSerializer,
    SettlementSerializer,
)
from payment_system.models import Settlement
from utils.service_base import http_status_for


logger = logging.getLogger(__name__)


@extend_schema_view(
    list=extend_schema(
        summary="List my settlements",
        description="Purchases of the caller, or with role=seller the settlements that pay the caller.",
        parameters=[
            OpenApiParameter("role", str, enum=["buyer", "seller"]),
            OpenApiParameter("awaiting_transfers", bool),
        ],
        responses={200: SettlementSerializer(many=True)},
        tags=["Settlements"],
    ),
    retrieve=extend_schema(
        summary="Get settlement details",
        responses={200: SettlementDetailSerializer},
        tags=["Settlements"],
    ),
)
class SettlementViewSet(viewsets.ViewSet):
    """
    Read access to settlements for their participants, plus the staff-only
    transfer retry.
    """

    permission_classes = [IsAuthenticated, IsSettlementParticipant]

    def list(self, request):
        query = SettlementListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        if query.validated_data["role"] == "seller":
            queryset = Settlement.objects.for_seller(request.user)
        else:
            queryset = Settlement.objects.for_buyer(request.user)

        if query.validated_data["awaiting_transfers"]:
            queryset = queryset.awaiting_transfers()

        queryset = queryset.prefetch_related("lines", "payouts").order_by("-created_at")
        return Response(SettlementSerializer(queryset, many=True).data)

    def retrieve(self, request, pk=None):
        settlement = get_object_or_404(Settlement.objects.prefetch_related("lines", "payouts"), pk=pk)
        self.check_object_permissions(request, settlement)
        return Response(SettlementDetailSerializer(settlement).data)

    @extend_schema(
        summary="Retry failed seller transfers",
        request=None,
        responses={200: ReconciliationResponseSerializer},
        tags=["Settlements"],
    )
    @action(
        detail=True,
        methods=["post"],
        url_path="retry-transfers",
        permission_classes=[IsStaffOrInternalService],
    )
    def retry_transfers(self, request, pk=None):
        settlement = get_object_or_404(Settlement, pk=pk)

        result = container.reconciliation_service().retry_failed_transfers(settlement)
        if not result.ok:
            return Response({"error": result.error, "detail": result.error_detail}, status=http_status_for(result))

        logger.info(f"Transfer retry for settlement {settlement.id} requested by {request.user}")
        return Response(result.value.to_dict(), status=status.HTTP_200_OK)
