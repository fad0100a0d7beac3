from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from shared.utils.http import api_view
from training_app.services.lifecycle import ModelLifecycle
from .models import PredictionLog


@csrf_exempt
@api_view(['POST'])
def api_predict(request, model_id, dataset_id):
    """Predict the column classes of a dataset with a trained model."""
    prediction = ModelLifecycle().predict_model(model_id, dataset_id)
    return JsonResponse(prediction.to_dict())


@api_view(['GET'])
def api_logs(request, model_id):
    """Prediction history of a model, newest first."""
    logs = PredictionLog.objects.filter(model_id=model_id)
    return JsonResponse({'logs': [log.to_dict() for log in logs]})
