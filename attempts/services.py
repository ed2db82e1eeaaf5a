"""
Attempt life cycle: NotStarted -> Open -> Submitted.

An open attempt stays open until it is submitted; there is no abandoned
state. Opening is an idempotent upsert guarded by the partial unique
constraint on open attempts, and submitting is a conditional update that
only one caller can win.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from attempts.models import SUBMISSION_SOURCE_CHOICES, AttemptAnswer, AttemptLog, AttemptSummary
from attempts.summaries import record_submission
from grading.exceptions import (
    AlreadySubmitted,
    GradingValidationError,
    InvalidAttempt,
    NoAttemptsRemaining,
    NotFound,
    PersistenceUnavailable,
    TimeExpired,
)
from grading.schemas import parse_answers_bundle
from grading.scorer import GradingKey
from quiz.models import Quiz

logger = logging.getLogger("django_quiz")

DEFAULT_SUBMISSION_SOURCE = "manual_submit"
SUBMISSION_SOURCES = {value for value, _ in SUBMISSION_SOURCE_CHOICES}


@dataclass
class AttemptTicket:
    attempt: AttemptLog
    expires_at: Optional[datetime]
    max_attempts: int
    allow_retake: bool
    resumed: bool = False


@dataclass
class SubmissionResult:
    attempt: AttemptLog
    score: Decimal
    max_score: Decimal
    summary: AttemptSummary
    summary_changed: bool
    details_logged: bool


def get_quiz(quiz_id):
    try:
        return Quiz.objects.select_related('section', 'subject').get(pk=quiz_id)
    except (Quiz.DoesNotExist, ValueError, TypeError):
        raise NotFound("Quiz not found")


def expires_at(quiz, attempt):
    if not quiz.time_limit_minutes:
        return None
    return attempt.started_at + timedelta(minutes=quiz.time_limit_minutes)


def _open_attempt(quiz, student_id):
    return (
        AttemptLog.objects
        .filter(quiz=quiz, student_id=student_id, is_submitted=False)
        .order_by('-started_at')
        .first()
    )


def submitted_count(quiz, student_id):
    return AttemptLog.objects.filter(quiz=quiz, student_id=student_id, is_submitted=True).count()


def _ticket(quiz, attempt, resumed):
    return AttemptTicket(
        attempt=attempt,
        expires_at=expires_at(quiz, attempt),
        max_attempts=quiz.effective_max_attempts,
        allow_retake=quiz.retake_allowed,
        resumed=resumed,
    )


def _open_or_resume(quiz, student_id, student_name):
    existing = _open_attempt(quiz, student_id)
    if existing is not None:
        logger.debug(f"Resuming attempt {existing.pk} for {student_id} on quiz {quiz.pk}")
        return existing, True

    count = submitted_count(quiz, student_id)
    if count >= quiz.effective_max_attempts:
        raise NoAttemptsRemaining()

    try:
        with transaction.atomic():
            attempt = AttemptLog.objects.create(
                quiz=quiz,
                student_id=student_id,
                student_name=student_name,
                attempt_number=count + 1,
                subject_id=quiz.subject_id,
                section_id=quiz.section_id,
                started_at=timezone.now(),
            )
    except IntegrityError:
        # lost a race with a concurrent start for the same student
        existing = _open_attempt(quiz, student_id)
        if existing is None:
            raise
        return existing, True

    logger.info(f"Started attempt {attempt.pk} (#{attempt.attempt_number}) for {student_id} on quiz {quiz.pk}")
    return attempt, False


def start_attempt(quiz_id, student_id, student_name) -> AttemptTicket:
    """
    Open an attempt, or hand back the one already open.

    An open attempt whose time limit has run out is closed as time_expired
    first and counts as a used attempt.

    Raises NoAttemptsRemaining once the student has used every attempt.
    """
    quiz = get_quiz(quiz_id)
    stale = _open_attempt(quiz, student_id)
    if stale is not None and is_expired(quiz, stale, timezone.now()):
        close_expired_attempt(quiz, stale)
    attempt, resumed = _open_or_resume(quiz, student_id, student_name)
    return _ticket(quiz, attempt, resumed)


def attempt_count(quiz_id, student_id):
    quiz = get_quiz(quiz_id)
    return {
        'attemptCount': submitted_count(quiz, student_id),
        'maxAttempts': quiz.effective_max_attempts,
        'allowRetake': quiz.retake_allowed,
    }


def best_score(quiz_id, student_id):
    quiz = get_quiz(quiz_id)
    return (
        AttemptSummary.objects
        .filter(quiz=quiz, student_id=student_id)
        .order_by('-score')
        .first()
    )


def _resolve_attempt(quiz, student_id, attempt_id):
    """
    The attempt a submission refers to.

    An attempt id from another student is rejected. One from a sibling quiz
    sharing the same source quiz is ignored and the submission is treated as
    fresh. Returns None for a fresh submission.
    """
    if attempt_id in (None, ""):
        return None
    try:
        attempt = AttemptLog.objects.select_related('quiz').get(pk=int(attempt_id))
    except (AttemptLog.DoesNotExist, ValueError, TypeError):
        raise InvalidAttempt("Attempt not found")

    if attempt.student_id != student_id:
        raise InvalidAttempt()

    if attempt.quiz_id != quiz.pk:
        if attempt.quiz.source_id == quiz.source_id:
            logger.warning(
                f"Attempt {attempt.pk} belongs to sibling quiz {attempt.quiz_id}, treating submission to "
                f"quiz {quiz.pk} as fresh")
            return None
        raise InvalidAttempt()

    return attempt


def is_expired(quiz, attempt, now):
    deadline = expires_at(quiz, attempt)
    if deadline is None:
        return False
    # grace is 0 unless a deployment opts in
    grace = timedelta(seconds=settings.QUIZ_SUBMISSION_GRACE_SECONDS)
    return now > deadline + grace


def _check_time(quiz, attempt, now):
    if is_expired(quiz, attempt, now):
        raise TimeExpired()


@transaction.atomic
def close_expired_attempt(quiz, attempt):
    """
    Submit an open attempt that ran out of time with whatever answers it
    holds, so the student can move on to the next attempt.

    Returns False when a concurrent submission closed it first.
    """
    bundle = parse_answers_bundle(attempt.answers)
    result = GradingKey.from_questions(quiz.questions()).grade(bundle)

    updated = AttemptLog.objects.filter(pk=attempt.pk, is_submitted=False).update(
        is_submitted=True,
        submitted_at=timezone.now(),
        score=result.score,
        max_score=result.max_score,
        answers=bundle.to_storage(),
        submission_source="time_expired",
    )
    if updated == 0:
        return False

    attempt.refresh_from_db()
    record_submission(quiz, attempt)
    logger.info(f"Closed expired attempt {attempt.pk} for {attempt.student_id} on quiz {quiz.pk}: {result.score}")
    return True


def record_answer_details(attempt, outcomes):
    """
    Write the per-question history rows.

    Raises PersistenceUnavailable when the detail table cannot be written; the
    caller decides whether that is fatal.
    """
    try:
        with transaction.atomic():
            AttemptAnswer.objects.bulk_create([
                AttemptAnswer(
                    attempt=attempt,
                    question_id=outcome.question_id,
                    question_type=outcome.kind.value,
                    answer_text=outcome.answer,
                    is_correct=outcome.correct,
                    points_awarded=outcome.points_awarded,
                    matched_items=outcome.matched_items,
                )
                for outcome in outcomes
            ])
    except DatabaseError as e:
        logger.error(f"Could not write answer details for attempt {attempt.pk}: {e}")
        raise PersistenceUnavailable("Answer details could not be logged") from e


@transaction.atomic
def submit_attempt(quiz_id, student_id, student_name, raw_answers, submission_source=None,
                   attempt_id=None) -> SubmissionResult:
    """
    Grade and close an attempt, then fold it into the summary record.

    Without a usable attempt id the student's open attempt is used, or a new
    one is opened (subject to the attempt limit) and submitted at once.
    """
    quiz = get_quiz(quiz_id)

    source = submission_source or DEFAULT_SUBMISSION_SOURCE
    if source not in SUBMISSION_SOURCES:
        raise GradingValidationError(f"Unknown submission source {source!r}")

    bundle = parse_answers_bundle(raw_answers)

    attempt = _resolve_attempt(quiz, student_id, attempt_id)
    if attempt is None:
        attempt, _ = _open_or_resume(quiz, student_id, student_name)

    if attempt.is_submitted:
        raise AlreadySubmitted()

    now = timezone.now()
    _check_time(quiz, attempt, now)

    result = GradingKey.from_questions(quiz.questions()).grade(bundle)

    updated = AttemptLog.objects.filter(pk=attempt.pk, is_submitted=False).update(
        is_submitted=True,
        submitted_at=now,
        score=result.score,
        max_score=result.max_score,
        answers=bundle.to_storage(),
        submission_source=source,
        student_name=student_name or attempt.student_name,
    )
    if updated == 0:
        raise AlreadySubmitted()

    attempt.refresh_from_db()
    summary, changed = record_submission(quiz, attempt)

    details_logged = True
    try:
        record_answer_details(attempt, result.outcomes)
    except PersistenceUnavailable:
        details_logged = False

    logger.info(
        f"Attempt {attempt.pk} submitted ({source}) by {student_id} on quiz {quiz.pk}: "
        f"{result.score}/{result.max_score}")

    return SubmissionResult(
        attempt=attempt,
        score=result.score,
        max_score=result.max_score,
        summary=summary,
        summary_changed=changed,
        details_logged=details_logged,
    )
