from django.urls import path
from . import views

app_name = 'dataset_app'

urlpatterns = [
    path('api/', views.api_datasets, name='api_datasets'),
    path('api/<int:dataset_id>/', views.api_dataset, name='api_dataset'),
]
