from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('datasets/', include('dataset_app.urls')),
    path('models/', include('model_registry.urls')),
    path('training/', include('training_app.urls')),
    path('inference/', include('inference_app.urls')),
]
