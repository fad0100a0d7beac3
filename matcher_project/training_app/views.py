from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from shared.utils.http import api_view
from .models import TrainingRun
from .services.lifecycle import ModelLifecycle


@csrf_exempt
@api_view(['POST'])
def api_train(request, model_id):
    """Request training of a model; answers with its training state."""
    state = ModelLifecycle().train_model(model_id)
    return JsonResponse(state.to_dict(), status=202)


@api_view(['GET'])
def api_runs(request, model_id):
    """Training run history of a model, newest first."""
    runs = TrainingRun.objects.filter(model_id=model_id)
    return JsonResponse({'runs': [r.to_dict() for r in runs]})
