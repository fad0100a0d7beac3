from django.contrib import admin
from .models import MatcherModel


@admin.register(MatcherModel)
class MatcherModelAdmin(admin.ModelAdmin):
    list_display = ['id', 'description', 'model_type', 'status', 'resampling_strategy', 'date_modified']
    list_filter = ['model_type', 'status', 'resampling_strategy']
    search_fields = ['description']
    readonly_fields = ['model_path', 'artifact_hash', 'state_date_created', 'state_date_changed', 'date_created']
