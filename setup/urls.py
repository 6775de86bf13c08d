from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from apps.accounts.schema import BearerJWTAuthenticationExtension  # noqa: F401 Force load the extension
from apps.common.views import HealthView

urlpatterns = [
    path('', include('apps.accounts.urls')),
    path('', include('apps.learning.urls')),
    path('', include('apps.ai.urls')),
    path('health', HealthView.as_view(), name='health'),
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('schema/swagger-ui/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
