import logging

from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from gallery.serializers import (
    ImageCreateSerializer,
    ImageDeleteSerializer,
    ImageListQuerySerializer,
    ImagePriceUpdateSerializer,
    ImageSerializer,
    ImageVisibilitySerializer,
)
from gallery.services import ImageService
from infrastructure.container import container
from utils.service_base import http_status_for


logger = logging.getLogger(__name__)


LIST_PARAMETERS = [
    OpenApiParameter("offset", int, description="Rows to skip"),
    OpenApiParameter("limit", int, description="Page size (max 100)"),
    OpenApiParameter("tags", str, description="Comma separated tags"),
    OpenApiParameter("price_min", int, description="Minimum price in cents"),
    OpenApiParameter("price_max", int, description="Maximum price in cents"),
    OpenApiParameter("q", str, description="Text matched against description and tags"),
]


@extend_schema_view(
    list=extend_schema(
        summary="Browse images",
        description="Public images, plus the caller's own private images when authenticated.",
        parameters=LIST_PARAMETERS + [OpenApiParameter("user", str, description="Owner id")],
        responses={200: ImageSerializer(many=True)},
    ),
    create=extend_schema(
        summary="Register uploaded images",
        request=ImageCreateSerializer,
        responses={201: ImageSerializer(many=True)},
    ),
)
class ImageViewSet(viewsets.ViewSet):
    """
    ViewSet for images - all logic lives in ImageService.
    """

    def get_permissions(self):
        if self.action == "list":
            return [AllowAny()]
        return [IsAuthenticated()]

    def get_service(self) -> ImageService:
        return container.image_service()

    def _error(self, result):
        return Response({"error": result.error, "detail": result.error_detail}, status=http_status_for(result))

    def _list(self, request, owner_id=None):
        query = ImageListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        result = self.get_service().list_images(
            filters={key: params.get(key) for key in ("tags", "price_min", "price_max", "q")},
            offset=params["offset"],
            limit=params["limit"],
            viewer=request.user,
            owner_id=owner_id or params.get("user"),
        )
        if not result.ok:
            return self._error(result)

        return Response(
            {
                "count": result.value["count"],
                "offset": params["offset"],
                "limit": params["limit"],
                "results": ImageSerializer(result.value["results"], many=True).data,
            }
        )

    def list(self, request):
        return self._list(request)

    def create(self, request):
        serializer = ImageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.get_service().create_images(request.user, **serializer.validated_data)
        if not result.ok:
            return self._error(result)

        return Response(ImageSerializer(result.value, many=True).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="List my images",
        parameters=LIST_PARAMETERS,
        responses={200: ImageSerializer(many=True)},
    )
    @action(detail=False, methods=["get"])
    def mine(self, request):
        return self._list(request, owner_id=request.user.id)

    @extend_schema(
        summary="Set image prices",
        description="A positive price lists the image for sale; zero takes it off sale.",
        request=ImagePriceUpdateSerializer,
        responses={200: ImageSerializer(many=True)},
    )
    @action(detail=False, methods=["post"], url_path="update-prices")
    def update_prices(self, request):
        serializer = ImagePriceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        prices = [(str(item["id"]), item["price"]) for item in serializer.validated_data["prices"]]
        result = self.get_service().update_prices(request.user, prices)
        if not result.ok:
            return self._error(result)

        return Response(ImageSerializer(result.value, many=True).data)

    @extend_schema(summary="Make images public or private", request=ImageVisibilitySerializer)
    @action(detail=False, methods=["post"], url_path="change-permission")
    def change_permission(self, request):
        serializer = ImageVisibilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.get_service().change_visibility(
            request.user,
            [str(image_id) for image_id in serializer.validated_data["ids"]],
            serializer.validated_data["is_public"],
        )
        if not result.ok:
            return self._error(result)

        return Response({"updated": result.value})

    @extend_schema(summary="Delete images", request=ImageDeleteSerializer)
    @action(detail=False, methods=["post"], url_path="delete")
    def delete_images(self, request):
        serializer = ImageDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.get_service().delete_images(
            request.user,
            [str(image_id) for image_id in serializer.validated_data["ids"]],
            all_images=serializer.validated_data["all"],
        )
        if not result.ok:
            return self._error(result)

        return Response({"deleted": result.value})
