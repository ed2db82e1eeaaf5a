import logging

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from attempts import services
from attempts.models import AttemptSummary
from grading.exceptions import GradingValidationError
from quiz.decorators import json_errors, read_json_body, required_field
from quiz.utils import as_number

logger = logging.getLogger("django_quiz")


def _summary_payload(summary):
    return {
        'id': summary.pk,
        'quizId': summary.quiz_id,
        'studentId': summary.student_id,
        'studentName': summary.student_name,
        'attemptNumber': summary.attempt_number,
        'score': as_number(summary.score),
        'maxScore': as_number(summary.max_score),
        'subjectId': summary.subject_id,
        'sectionId': summary.section_id,
        'createdAt': summary.created_at.isoformat() if summary.created_at else None,
    }


def _query_param(request, key):
    value = (request.GET.get(key) or "").strip()
    if not value:
        raise GradingValidationError(f"{key} required")
    return value


@csrf_exempt
@require_POST
@json_errors
def start_attempt(request):
    body = read_json_body(request)
    ticket = services.start_attempt(
        quiz_id=required_field(body, "quizId"),
        student_id=required_field(body, "studentId"),
        student_name=required_field(body, "studentName"),
    )
    return JsonResponse({
        "attemptId": ticket.attempt.pk,
        "attemptNumber": ticket.attempt.attempt_number,
        "expiresAt": ticket.expires_at.isoformat() if ticket.expires_at else None,
        "maxAttempts": ticket.max_attempts,
        "allowRetake": ticket.allow_retake,
    })


@csrf_exempt
@require_POST
@json_errors
def submit_attempt(request):
    body = read_json_body(request)
    result = services.submit_attempt(
        quiz_id=required_field(body, "quizId"),
        student_id=required_field(body, "studentId"),
        student_name=required_field(body, "studentName"),
        raw_answers=body.get("answers"),
        submission_source=body.get("submissionSource"),
        attempt_id=body.get("attemptId"),
    )
    return JsonResponse({
        "attemptId": result.attempt.pk,
        "attemptNumber": result.attempt.attempt_number,
        "score": as_number(result.score),
        "maxScore": as_number(result.max_score),
        "summaryRecord": _summary_payload(result.summary),
        "detailsLogged": result.details_logged,
    })


@require_GET
@json_errors
def attempt_count(request):
    counts = services.attempt_count(
        quiz_id=_query_param(request, "quizId"),
        student_id=_query_param(request, "studentId"),
    )
    return JsonResponse(counts)


@require_GET
@json_errors
def best_score(request):
    summary = services.best_score(
        quiz_id=_query_param(request, "quizId"),
        student_id=_query_param(request, "studentId"),
    )
    return JsonResponse({"score": as_number(summary.score) if summary else 0})


@require_GET
@login_required
def teacher_scores(request):
    summaries = (
        AttemptSummary.objects
        .filter(quiz__teacher=request.user)
        .select_related('quiz')
        .order_by('-created_at')
    )

    subject_id = request.GET.get("subjectId")
    section_id = request.GET.get("sectionId")
    if subject_id:
        summaries = summaries.filter(quiz__subject_id=subject_id)
    if section_id:
        summaries = summaries.filter(quiz__section_id=section_id)

    rows = []
    for summary in summaries:
        row = _summary_payload(summary)
        row["quizcode"] = summary.quiz.quiz_code
        rows.append(row)

    return JsonResponse({"rows": rows})
