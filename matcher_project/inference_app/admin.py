from django.contrib import admin
from .models import PredictionLog


@admin.register(PredictionLog)
class PredictionLogAdmin(admin.ModelAdmin):
    list_display = ['id', 'model_id', 'dataset_id', 'timestamp']
    list_filter = ['model_id']
    search_fields = ['model_id', 'dataset_id']
    readonly_fields = ['timestamp']
