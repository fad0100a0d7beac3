from django.urls import path
from . import views

app_name = 'inference_app'

urlpatterns = [
    path('api/predict/<int:model_id>/<int:dataset_id>/', views.api_predict, name='api_predict'),
    path('api/logs/<int:model_id>/', views.api_logs, name='api_logs'),
]
