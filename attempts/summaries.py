"""
Summary record policy shared by live submissions and recheck.

Every write goes through a row lock on the (quiz, student, slot) summary so a
recheck and a live submission for the same student cannot interleave.
"""
import logging

from django.db import transaction

from attempts.models import AttemptLog, AttemptSummary

logger = logging.getLogger("django_quiz")


def summary_slot(quiz, attempt_number):
    if quiz.save_best_only:
        return AttemptSummary.BEST_ONLY_SLOT
    return attempt_number


def _summary_fields(attempt):
    return {
        'student_name': attempt.student_name,
        'attempt_number': attempt.attempt_number,
        'score': attempt.score,
        'max_score': attempt.max_score,
        'subject_id': attempt.subject_id,
        'section_id': attempt.section_id,
    }


def _apply(summary, attempt):
    for field, value in _summary_fields(attempt).items():
        setattr(summary, field, value)
    summary.save()


@transaction.atomic
def record_submission(quiz, attempt):
    """
    Fold one freshly submitted attempt into its summary record.

    Best-only quizzes keep the existing row unless the new score is strictly
    higher; all-attempts quizzes write the attempt's own row. Returns
    (summary, changed).
    """
    summary, created = AttemptSummary.objects.select_for_update().get_or_create(
        quiz=quiz,
        student_id=attempt.student_id,
        slot=summary_slot(quiz, attempt.attempt_number),
        defaults=_summary_fields(attempt),
    )
    if created:
        return summary, True

    if quiz.save_best_only and attempt.score <= summary.score:
        return summary, False

    _apply(summary, attempt)
    return summary, True


def best_attempt(attempts):
    """Highest score wins, ties go to the latest submission."""
    def rank(attempt):
        return (attempt.score, attempt.submitted_at or attempt.started_at, attempt.attempt_number)
    return max(attempts, key=rank, default=None)


def _submitted_logs(quiz, student_id, section_id=None):
    logs = AttemptLog.objects.filter(quiz=quiz, student_id=student_id, is_submitted=True, score__isnull=False)
    if section_id is not None:
        logs = logs.filter(section_id=section_id)
    return list(logs)


@transaction.atomic
def _reconcile_best(quiz, student_id, section_id):
    summary = (
        AttemptSummary.objects.select_for_update()
        .filter(quiz=quiz, student_id=student_id, slot=AttemptSummary.BEST_ONLY_SLOT)
        .first()
    )
    # log is read under the summary lock
    best = best_attempt(_submitted_logs(quiz, student_id, section_id))
    if best is None:
        return 0

    if summary is None:
        AttemptSummary.objects.create(
            quiz=quiz, student_id=student_id, slot=AttemptSummary.BEST_ONLY_SLOT, **_summary_fields(best))
        return 1

    if summary.score == best.score and summary.max_score == best.max_score:
        return 0

    _apply(summary, best)
    return 1


@transaction.atomic
def _reconcile_each(quiz, student_id, section_id):
    touched = 0
    for attempt in _submitted_logs(quiz, student_id, section_id):
        summary, created = AttemptSummary.objects.select_for_update().get_or_create(
            quiz=quiz,
            student_id=student_id,
            slot=attempt.attempt_number,
            defaults=_summary_fields(attempt),
        )
        if created:
            touched += 1
        elif summary.score != attempt.score or summary.max_score != attempt.max_score:
            _apply(summary, attempt)
            touched += 1
    return touched


def reconcile_summaries(quiz, student_ids, section_id=None):
    """
    Re-derive the summary rows of `student_ids` on `quiz` from the attempt log.

    Returns the number of summary rows created or changed; rows that already
    agree with the log are left alone.
    """
    reconcile = _reconcile_best if quiz.save_best_only else _reconcile_each
    touched = 0
    for student_id in sorted(set(student_ids)):
        touched += reconcile(quiz, student_id, section_id)
    if touched:
        logger.info(f"Quiz {quiz.pk}: {touched} summary row(s) rewritten")
    return touched
