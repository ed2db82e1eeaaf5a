"""
Bulk regrading of submitted attempts against the current answer keys.

A teacher rechecks a (subject, section) pair rather than a single quiz
because one source quiz may be assigned to many sections. Every attempt is
regraded from its stored answers with the same GradingKey the live
submission path uses, then the summary records are re-derived from the log.
"""
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Dict

from django.db import DatabaseError

from attempts.models import AttemptLog
from attempts.summaries import reconcile_summaries
from grading.exceptions import GradingValidationError, NotFound, PersistenceUnavailable
from grading.scorer import GradingKey
from quiz.models import Question, Quiz, Section, Subject

logger = logging.getLogger("django_quiz")


@dataclass
class RecheckReport:
    total_attempts: int = 0
    updated_log_count: int = 0
    updated_summary_count: int = 0
    skipped_attempts: int = 0

    def as_dict(self):
        return asdict(self)


def load_grading_key(source_id, cache: Dict[int, GradingKey]) -> GradingKey:
    """Grading key for a source quiz, fetched at most once per recheck run."""
    key = cache.get(source_id)
    if key is None:
        questions = Question.objects.filter(quiz_id=source_id).order_by('order_index', 'id')
        key = GradingKey.from_questions(questions)
        cache[source_id] = key
    return key


def _load_attempts(quiz_ids, section_id):
    try:
        return list(
            AttemptLog.objects
            .filter(quiz_id__in=quiz_ids, section_id=section_id, is_submitted=True)
            .order_by('quiz_id', 'student_id', 'attempt_number')
        )
    except DatabaseError as e:
        logger.error(f"Attempt log unavailable for recheck: {e}")
        raise PersistenceUnavailable("Recheck requires the attempt log with stored answers.") from e


def regrade_attempt(attempt, grading_key, report):
    """
    Regrade one logged attempt and store the new score if it moved.

    Returns False when the stored answers are unusable; the attempt is then
    left as it was.
    """
    try:
        result = grading_key.grade(attempt.answers)
    except GradingValidationError as e:
        logger.warning(f"Skipping attempt {attempt.pk} with malformed answers: {e.message}")
        report.skipped_attempts += 1
        return False

    report.total_attempts += 1
    if attempt.score == result.score and attempt.max_score == result.max_score:
        return True

    AttemptLog.objects.filter(pk=attempt.pk).update(score=result.score, max_score=result.max_score)
    attempt.score = result.score
    attempt.max_score = result.max_score
    report.updated_log_count += 1
    return True


def recheck_section(teacher_id, subject_id, section_id) -> RecheckReport:
    """
    Regrade every submitted attempt on the teacher's quizzes for a subject
    and section, then rewrite the summaries.

    Quizzes whose source currently has no gradable questions are skipped so
    an emptied question bank never wipes scores. Running it twice without key
    changes reports no updates the second time.
    """
    if not Subject.objects.filter(pk=subject_id).exists():
        raise NotFound("Subject not found")
    if not Section.objects.filter(pk=section_id).exists():
        raise NotFound("Section not found")

    report = RecheckReport()
    quizzes = {
        quiz.pk: quiz
        for quiz in Quiz.objects.filter(teacher_id=teacher_id, subject_id=subject_id, section_id=section_id)
    }
    if not quizzes:
        return report

    logger.info(
        f"Recheck for teacher {teacher_id}, subject {subject_id}, section {section_id}: "
        f"{len(quizzes)} quiz(zes), {len({q.source_id for q in quizzes.values()})} source(s)")

    cache: Dict[int, GradingKey] = {}
    students_by_quiz = defaultdict(set)

    for attempt in _load_attempts(list(quizzes), section_id):
        quiz = quizzes[attempt.quiz_id]
        grading_key = load_grading_key(quiz.source_id, cache)
        if grading_key.gradable_count == 0:
            continue
        if regrade_attempt(attempt, grading_key, report):
            students_by_quiz[quiz.pk].add(attempt.student_id)

    for quiz_id, student_ids in students_by_quiz.items():
        report.updated_summary_count += reconcile_summaries(quizzes[quiz_id], student_ids, section_id=section_id)

    logger.info(f"Recheck finished: {report.as_dict()}")
    return report
