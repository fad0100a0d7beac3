from django.contrib import admin
from .models import TrainingRun


@admin.register(TrainingRun)
class TrainingRunAdmin(admin.ModelAdmin):
    list_display = ['id', 'model_id', 'model_type', 'status', 'started_at', 'completed_at']
    list_filter = ['model_type', 'status']
    search_fields = ['model_id']
    readonly_fields = ['started_at', 'completed_at']
