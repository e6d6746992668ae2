from django.urls import include, path
from rest_framework.routers import SimpleRouter

from gallery.views import ImageViewSet


app_name = "gallery"

router = SimpleRouter()
router.register(r"", ImageViewSet, basename="image")

urlpatterns = [
    path("", include(router.urls)),
]
