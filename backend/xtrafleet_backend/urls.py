from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check),  # Health check endpoint

    # JWT for API clients and the ws/fleet/ querystring token
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),

    # Match negotiation (create / respond / cancel)
    path('api/matches/', include('matches.urls')),

    # Trip lease agreements (sign, trip tracking, rating)
    path('api/agreements/', include('agreements.urls')),
]
