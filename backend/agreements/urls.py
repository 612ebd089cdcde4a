from django.urls import path
from . import views

app_name = 'agreements'

urlpatterns = [
    path('from-match/<int:match_id>/', views.create_agreement, name='create-agreement'),
    path('<int:tla_id>/', views.agreement_detail, name='agreement-detail'),
    path('<int:tla_id>/text/', views.agreement_text, name='agreement-text'),
    path('<int:tla_id>/sign/', views.sign_agreement, name='sign-agreement'),
    path('<int:tla_id>/void/', views.void_agreement, name='void-agreement'),

    # Trip
    path('<int:tla_id>/start/', views.start_trip, name='start-trip'),
    path('<int:tla_id>/end/', views.end_trip, name='end-trip'),
    path('<int:tla_id>/availability/', views.post_trip_availability, name='post-trip-availability'),
    path('<int:tla_id>/rate/', views.rate_driver, name='rate-driver'),
]
