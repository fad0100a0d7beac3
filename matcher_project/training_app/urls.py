from django.urls import path
from . import views

app_name = 'training_app'

urlpatterns = [
    path('api/train/<int:model_id>/', views.api_train, name='api_train'),
    path('api/runs/<int:model_id>/', views.api_runs, name='api_runs'),
]
