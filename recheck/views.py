import logging

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from grading.exceptions import GradingValidationError
from quiz.decorators import json_errors, read_json_body, required_field
from recheck.services import recheck_section
from recheck.tasks import recheck_section_task

logger = logging.getLogger("django_quiz")


def _int_field(body, key):
    value = required_field(body, key)
    try:
        return int(value)
    except ValueError as e:
        raise GradingValidationError(f"{key} must be an integer") from e


@csrf_exempt
@require_POST
@login_required
@json_errors
def recheck_section_view(request):
    body = read_json_body(request)
    subject_id = _int_field(body, "subjectId")
    section_id = _int_field(body, "sectionId")

    if body.get("background"):
        recheck_section_task.delay_on_commit(request.user.pk, subject_id, section_id)
        logger.info(f"Queued recheck for subject {subject_id}, section {section_id}")
        return JsonResponse({"ok": True, "queued": True}, status=202)

    report = recheck_section(teacher_id=request.user.pk, subject_id=subject_id, section_id=section_id)

    return JsonResponse({
        "ok": True,
        "totalAttempts": report.total_attempts,
        "updatedLogCount": report.updated_log_count,
        "updatedSummaryCount": report.updated_summary_count,
        "skippedAttempts": report.skipped_attempts,
    })
