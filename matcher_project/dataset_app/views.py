import json

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from shared.utils.exceptions import NotFoundError, ValidationError
from shared.utils.http import api_view, json_body
from training_app.services.lifecycle import ModelLifecycle
from .services import DatasetStorage


def _type_map(raw):
    if raw is None or raw == '':
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError("'type_map' must be a JSON object")
    if not isinstance(raw, dict):
        raise ValidationError("'type_map' must be a JSON object")
    return {str(k): str(v) for k, v in raw.items()}


@csrf_exempt
@api_view(['GET', 'POST'])
def api_datasets(request):
    """List datasets, or upload a CSV file as a new one."""
    storage = DatasetStorage()
    if request.method == 'GET':
        return JsonResponse({'datasets': [d.to_dict() for d in storage.list_values()]})
    
    dataset = storage.upload(
        request.FILES.get('file'),
        description=request.POST.get('description'),
        type_map=_type_map(request.POST.get('type_map')),
    )
    return JsonResponse(dataset.to_dict(), status=201)


@csrf_exempt
@api_view(['GET', 'PUT', 'DELETE'])
def api_dataset(request, dataset_id):
    """Get, update or delete one dataset."""
    storage = DatasetStorage()
    
    if request.method == 'GET':
        sample_size = request.GET.get('sample_size')
        if sample_size is not None:
            try:
                sample_size = int(sample_size)
            except ValueError:
                raise ValidationError("'sample_size' must be an integer")
            if sample_size < 0:
                raise ValidationError("'sample_size' must not be negative")
        return JsonResponse(storage.describe(dataset_id, sample_size))
    
    if request.method == 'PUT':
        data = json_body(request)
        description = data.get('description')
        if description is not None and not isinstance(description, str):
            raise ValidationError("'description' must be a string")
        dataset = storage.update_dataset(
            dataset_id,
            description=description,
            type_map=_type_map(data.get('type_map')),
        )
        return JsonResponse(dataset.to_dict())
    
    deleted = ModelLifecycle(datasets=storage).delete_dataset(dataset_id)
    if deleted is None:
        raise NotFoundError(f"Dataset {dataset_id} does not exist")
    return JsonResponse({'deleted': deleted})
