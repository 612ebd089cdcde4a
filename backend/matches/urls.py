from django.urls import path
from . import views

app_name = 'matches'

urlpatterns = [
    path('', views.create_match, name='create-match'),
    path('<int:match_id>/', views.match_detail, name='match-detail'),
    path('<int:match_id>/respond/', views.respond_to_match, name='respond-match'),
    path('<int:match_id>/cancel/', views.cancel_match, name='cancel-match'),

    # Ranking
    path('candidates/<int:load_id>/', views.candidate_drivers, name='candidate-drivers'),
]
