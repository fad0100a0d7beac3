from django.urls import path
from . import views

app_name = 'model_registry'

urlpatterns = [
    path('api/', views.api_models, name='api_models'),
    path('api/<int:model_id>/', views.api_model, name='api_model'),
]
