import logging

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.db import transaction
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from grading.exceptions import Forbidden

from .decorators import json_errors, read_json_body
from .forms import QuestionEditForm, QuestionForm, QuizCopyForm
from .models import Question, Quiz
from .utils import as_number, generate_unique_quiz_code

logger = logging.getLogger("django_quiz")


def _question_payload(question, include_key=False):
    data = {
        'id': question.pk,
        'quizId': question.quiz_id,
        'question': question.question_text,
        'quizType': question.question_type,
        'options': question.options,
        'score': as_number(question.points),
        'imageUrl': question.image_url or None,
    }
    if include_key:
        data['answerkey'] = question.answer_key
    return data


def _quiz_payload(quiz):
    return {
        'id': quiz.pk,
        'quizcode': quiz.quiz_code,
        'quizname': quiz.quiz_name,
        'subjectId': quiz.subject_id,
        'sectionId': quiz.section_id,
        'sectionName': quiz.section.name,
        'timeLimitMinutes': quiz.time_limit_minutes,
        'allowRetake': quiz.retake_allowed,
        'maxAttempts': quiz.effective_max_attempts,
        'saveBestOnly': quiz.save_best_only,
        'sourceQuizId': quiz.source_quiz_id,
    }


def _check_owner(quiz, user):
    if quiz.teacher_id != user.pk:
        raise Forbidden("You are not allowed to access this quiz.")


@require_GET
def quiz_by_code(request, code):
    quiz = get_object_or_404(Quiz.objects.select_related('section'), quiz_code=code.strip().upper())
    questions = [_question_payload(q) for q in quiz.questions()]
    return JsonResponse({'quiz': _quiz_payload(quiz), 'questions': questions})


@csrf_exempt
@require_POST
@login_required
@json_errors
def add_questions(request, pk):
    quiz = get_object_or_404(Quiz, pk=pk)

    _check_owner(quiz, request.user)

    body = read_json_body(request)
    is_batch = isinstance(body.get('questions'), list)
    items = body['questions'] if is_batch else [body]

    if not items:
        return JsonResponse({"error": "At least one question required"}, status=400)

    forms = []
    for item in items:
        form = QuestionForm(item if isinstance(item, dict) else {})
        if not form.is_valid():
            logger.error(form.errors)
            return JsonResponse({"error": "Validation error", "form_errors": dict(form.errors)}, status=400)
        forms.append(form)

    # Questions always belong to the source quiz
    source_id = quiz.source_id
    next_index = Question.objects.filter(quiz_id=source_id).count()

    created = []
    with transaction.atomic():
        for offset, form in enumerate(forms):
            question = Question.objects.create(
                quiz_id=source_id, order_index=next_index + offset, **form.question_fields())
            created.append(question)

    logger.info(f"Added {len(created)} question(s) to quiz {source_id}")

    payload = [_question_payload(q, include_key=True) for q in created]
    return JsonResponse(payload if is_batch else payload[0], safe=False, status=201)


@csrf_exempt
@require_POST
@login_required
@json_errors
def edit_question(request, pk):
    question = get_object_or_404(Question.objects.select_related('quiz'), pk=pk)

    _check_owner(question.quiz, request.user)

    form = QuestionEditForm(read_json_body(request))
    if not form.is_valid():
        return JsonResponse({"error": "Validation error", "form_errors": dict(form.errors)}, status=400)

    data = form.cleaned_data
    if 'answerkey' in form.data:
        question.answer_key = data['answerkey'] or ''
    if data.get('score') is not None:
        question.points = data['score']
    if 'options' in form.data:
        question.options = data['options'] or []
    if data.get('question'):
        question.question_text = data['question'].strip()

    try:
        question.clean()
    except ValidationError as e:
        return JsonResponse({"error": "Validation error", "form_errors": e.message_dict}, status=400)

    question.save()
    logger.info(f"Question {question.pk} updated, recheck the quiz to regrade past attempts")

    return JsonResponse(_question_payload(question, include_key=True))


@csrf_exempt
@require_POST
@login_required
@json_errors
def copy_quiz(request, pk):
    """
    Issue a quiz to another section.

    `duplicate` copies the questions into an independent quiz, `assign`
    creates a quiz that keeps reading the source quiz's questions.
    """
    quiz = get_object_or_404(Quiz, pk=pk)

    _check_owner(quiz, request.user)

    body = read_json_body(request)
    form = QuizCopyForm({
        'action': body.get('action'),
        'section': body.get('sectionId'),
        'period': body.get('period', ''),
        'quiz_name': body.get('quizname', quiz.quiz_name),
    })
    if not form.is_valid():
        return JsonResponse({"error": "Validation error", "form_errors": dict(form.errors)}, status=400)

    action = form.cleaned_data['action']
    source_id = quiz.source_id

    with transaction.atomic():
        new_quiz = Quiz.objects.create(
            teacher=quiz.teacher,
            subject=quiz.subject,
            section=form.cleaned_data['section'],
            quiz_code=generate_unique_quiz_code(),
            quiz_name=(form.cleaned_data['quiz_name'] or '').strip(),
            period=(form.cleaned_data['period'] or '').strip(),
            time_limit_minutes=quiz.time_limit_minutes,
            allow_retake=quiz.allow_retake,
            max_attempts=quiz.max_attempts,
            save_best_only=quiz.save_best_only,
            source_quiz_id=source_id if action == 'assign' else None,
        )

        if action == 'duplicate':
            Question.objects.bulk_create([
                Question(
                    quiz=new_quiz,
                    question_type=q.question_type,
                    question_text=q.question_text,
                    answer_key=q.answer_key,
                    options=q.options,
                    points=q.points,
                    image_url=q.image_url,
                    order_index=q.order_index,
                )
                for q in Question.objects.filter(quiz_id=source_id)
            ])

    logger.info(f"Quiz {quiz.pk} copied ({action}) as {new_quiz.pk} {new_quiz.quiz_code}")

    return JsonResponse(_quiz_payload(new_quiz), status=201)
