import json
import logging
from functools import wraps

from django.http import JsonResponse

from grading.exceptions import GradingError, GradingValidationError

logger = logging.getLogger("django_quiz")


def json_errors(view_func):
    """
    Translate grading errors raised by a view into JSON error responses.

    Anything that is not a GradingError propagates so Django rolls the
    request transaction back.
    """

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except GradingError as e:
            logger.info(f"{request.path} rejected: {e.code} {e.message}")
            return JsonResponse({"error": e.message, "code": e.code}, status=e.status_code)
    return wrapper


def read_json_body(request):
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except ValueError as e:
        raise GradingValidationError("Invalid JSON") from e
    if not isinstance(body, dict):
        raise GradingValidationError("Request body must be a JSON object")
    return body


def required_field(body, key):
    value = str(body.get(key) or "").strip()
    if not value:
        raise GradingValidationError(f"{key} required")
    return value
