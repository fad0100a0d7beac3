from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from shared.utils.exceptions import NotFoundError
from shared.utils.http import api_view, json_body
from training_app.services.lifecycle import ModelLifecycle
from .requests import ModelRequest


@csrf_exempt
@api_view(['GET', 'POST'])
def api_models(request):
    """List models, or create one from a JSON body."""
    lifecycle = ModelLifecycle()
    if request.method == 'GET':
        models = [lifecycle.get_model(key) for key in lifecycle.model_keys()]
        return JsonResponse({'models': [m.to_dict() for m in models if m is not None]})
    
    model = lifecycle.create_model(ModelRequest.from_dict(json_body(request)))
    return JsonResponse(model.to_dict(), status=201)


@csrf_exempt
@api_view(['GET', 'PUT', 'DELETE'])
def api_model(request, model_id):
    """Get, update or delete one model."""
    lifecycle = ModelLifecycle()
    
    if request.method == 'GET':
        model = lifecycle.get_model(model_id)
        if model is None:
            raise NotFoundError(f"Model {model_id} does not exist")
        return JsonResponse(model.to_dict())
    
    if request.method == 'PUT':
        model = lifecycle.update_model(model_id, ModelRequest.from_dict(json_body(request)))
        return JsonResponse(model.to_dict())
    
    deleted = lifecycle.delete_model(model_id)
    if deleted is None:
        raise NotFoundError(f"Model {model_id} does not exist")
    return JsonResponse({'deleted': deleted})
