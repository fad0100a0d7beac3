"""
Helpers for the JSON API views.
"""
import functools
import json
from typing import Any, Callable, Dict, Iterable

from django.http import JsonResponse

from .exceptions import MatcherException, ValidationError
from .logging_utils import get_logger

logger = get_logger(__name__)


def api_view(methods: Iterable[str]) -> Callable:
    """
    Wrap a view returning JSON.
    
    Rejects other HTTP methods with 405 and turns MatcherExceptions into
    ``{"error": ...}`` responses with the exception's status code.
    Anything else is logged and answered with 500.
    """
    allowed = [m.upper() for m in methods]
    
    def decorator(view: Callable) -> Callable:
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            if request.method not in allowed:
                return JsonResponse(
                    {'error': f"{' or '.join(allowed)} required"}, status=405
                )
            try:
                return view(request, *args, **kwargs)
            except MatcherException as e:
                if e.status_code >= 500:
                    logger.error(f"{view.__name__} failed: {e}")
                return JsonResponse({'error': str(e)}, status=e.status_code)
            except Exception as e:
                logger.exception(f"Unexpected error in {view.__name__}")
                return JsonResponse({'error': str(e)}, status=500)
        return wrapper
    
    return decorator


def json_body(request) -> Dict[str, Any]:
    """Decode a JSON object request body; an empty body is an empty object."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError) as e:
        raise ValidationError(f"Invalid JSON body: {e}")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
