from django.contrib import admin
from .models import Column, Dataset


class ColumnInline(admin.TabularInline):
    model = Column
    extra = 0
    readonly_fields = ['index', 'name', 'size', 'logical_type', 'sample']


@admin.register(Dataset)
class DatasetAdmin(admin.ModelAdmin):
    list_display = ['id', 'filename', 'description', 'date_created', 'date_modified']
    search_fields = ['filename', 'description']
    readonly_fields = ['file_path', 'date_created', 'date_modified']
    inlines = [ColumnInline]
