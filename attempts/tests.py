import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth.models import User
from django.db import DatabaseError
from django.test import TestCase, Client, override_settings
from django.utils import timezone

from attempts import services
from attempts.models import AttemptAnswer, AttemptLog, AttemptSummary
from attempts.summaries import best_attempt, reconcile_summaries
from grading.exceptions import (
    AlreadySubmitted,
    GradingValidationError,
    InvalidAttempt,
    NoAttemptsRemaining,
    NotFound,
    TimeExpired,
)
from quiz.models import Question, Quiz, Section, Subject


def answers(capital="", scientist=""):
    return {
        "multiple_choice": [],
        "identification": [
            {"questionId": "capital", "answer": capital},
            {"questionId": "scientist", "answer": scientist},
        ],
        "enumeration": [],
    }


class AttemptTestBase(TestCase):
    """Two identification questions worth 5 and 3 points, so scores 0, 3, 5 and 8 are reachable."""

    @classmethod
    def setUpTestData(cls):
        cls.teacher = User.objects.create_user(username='teacher', password='password')
        cls.subject = Subject.objects.create(name='General Knowledge', slug='general-knowledge')
        cls.section = Section.objects.create(name='10-A')
        cls.other_section = Section.objects.create(name='10-B')
        cls.quiz = Quiz.objects.create(
            teacher=cls.teacher, subject=cls.subject, section=cls.section, quiz_code='GK234567',
            allow_retake=True, max_attempts=3, save_best_only=True)

        cls.capital = Question.objects.create(
            quiz=cls.quiz, question_type='identification', question_text='Capital of France?',
            answer_key='Paris', points=5, order_index=0)
        cls.scientist = Question.objects.create(
            quiz=cls.quiz, question_type='identification', question_text='Who described gravity?',
            answer_key='Newton', points=3, order_index=1)

    def answers_for(self, score):
        by_score = {
            0: answers(),
            3: answers(scientist="Newton"),
            5: answers(capital="Paris"),
            8: answers(capital="Paris", scientist="Newton"),
        }
        bundle = by_score[score]
        for item in bundle["identification"]:
            item["questionId"] = str(self.capital.pk if item["questionId"] == "capital" else self.scientist.pk)
        return bundle

    def submit(self, score, quiz=None, student_id='student-1', **kwargs):
        quiz = quiz or self.quiz
        return services.submit_attempt(
            quiz_id=quiz.pk, student_id=student_id, student_name='Ada Student',
            raw_answers=self.answers_for(score), **kwargs)


class StartAttemptTestCase(AttemptTestBase):

    def test_start_creates_first_attempt(self):
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        self.assertEqual(ticket.attempt.attempt_number, 1)
        self.assertFalse(ticket.resumed)
        self.assertIsNone(ticket.expires_at)
        self.assertEqual(ticket.max_attempts, 3)
        self.assertTrue(ticket.allow_retake)
        self.assertEqual(ticket.attempt.section, self.section)

    def test_start_twice_resumes_open_attempt(self):
        first = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        second = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        self.assertEqual(first.attempt.pk, second.attempt.pk)
        self.assertTrue(second.resumed)
        self.assertEqual(AttemptLog.objects.filter(quiz=self.quiz, student_id='student-1').count(), 1)

    def test_concurrent_start_converges_on_one_attempt(self):
        existing = AttemptLog.objects.create(
            quiz=self.quiz, student_id='student-1', student_name='Ada Student', attempt_number=1,
            started_at=timezone.now())

        # the first lookup misses the attempt a concurrent request just created
        with patch('attempts.services._open_attempt', side_effect=[None, None, existing]):
            ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')

        self.assertEqual(ticket.attempt.pk, existing.pk)
        self.assertTrue(ticket.resumed)
        self.assertEqual(
            AttemptLog.objects.filter(quiz=self.quiz, student_id='student-1', attempt_number=1).count(), 1)

    def test_start_after_submission_opens_next_attempt(self):
        self.submit(5)
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        self.assertEqual(ticket.attempt.attempt_number, 2)

    def test_no_attempts_remaining(self):
        self.quiz.max_attempts = 1
        self.quiz.save()
        self.submit(5)
        with self.assertRaises(NoAttemptsRemaining):
            services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')

    def test_expiry_follows_time_limit(self):
        self.quiz.time_limit_minutes = 20
        self.quiz.save()
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        self.assertEqual(ticket.expires_at, ticket.attempt.started_at + timedelta(minutes=20))

    def test_expired_open_attempt_is_closed_on_start(self):
        self.quiz.time_limit_minutes = 10
        self.quiz.save()
        first = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        AttemptLog.objects.filter(pk=first.attempt.pk).update(started_at=timezone.now() - timedelta(minutes=11))

        second = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')

        self.assertEqual(second.attempt.attempt_number, 2)
        self.assertFalse(second.resumed)
        expired = AttemptLog.objects.get(pk=first.attempt.pk)
        self.assertTrue(expired.is_submitted)
        self.assertEqual(expired.submission_source, 'time_expired')
        self.assertEqual(expired.score, Decimal(0))
        self.assertEqual(expired.max_score, Decimal(8))
        self.assertEqual(AttemptSummary.objects.get(quiz=self.quiz, student_id='student-1').score, Decimal(0))

    def test_expired_last_attempt_uses_up_the_limit(self):
        self.quiz.time_limit_minutes = 10
        self.quiz.max_attempts = 1
        self.quiz.save()
        first = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        AttemptLog.objects.filter(pk=first.attempt.pk).update(started_at=timezone.now() - timedelta(minutes=11))

        with self.assertRaises(NoAttemptsRemaining):
            services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        self.assertTrue(AttemptLog.objects.get(pk=first.attempt.pk).is_submitted)

    def test_unknown_quiz(self):
        with self.assertRaises(NotFound):
            services.start_attempt(999999, 'student-1', 'Ada Student')


class SubmitAttemptTestCase(AttemptTestBase):

    def test_submit_grades_and_logs(self):
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        result = self.submit(8, attempt_id=ticket.attempt.pk, submission_source='tab_switch')

        self.assertEqual(result.score, Decimal(8))
        self.assertEqual(result.max_score, Decimal(8))
        self.assertTrue(result.details_logged)
        self.assertTrue(result.summary_changed)

        attempt = AttemptLog.objects.get(pk=ticket.attempt.pk)
        self.assertTrue(attempt.is_submitted)
        self.assertIsNotNone(attempt.submitted_at)
        self.assertEqual(attempt.submission_source, 'tab_switch')
        self.assertEqual(attempt.answers["identification"][0]["answer"], "Paris")
        self.assertEqual(AttemptAnswer.objects.filter(attempt=attempt, is_correct=True).count(), 2)

    def test_submit_without_attempt_opens_one(self):
        result = self.submit(5)
        self.assertEqual(result.attempt.attempt_number, 1)
        self.assertEqual(result.attempt.submission_source, 'manual_submit')

    def test_submit_twice_is_rejected(self):
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        self.submit(5, attempt_id=ticket.attempt.pk)

        with self.assertRaises(AlreadySubmitted):
            self.submit(8, attempt_id=ticket.attempt.pk)

        attempt = AttemptLog.objects.get(pk=ticket.attempt.pk)
        self.assertEqual(attempt.score, Decimal(5))
        self.assertEqual(AttemptSummary.objects.get(quiz=self.quiz, student_id='student-1').score, Decimal(5))

    def test_submit_after_time_limit(self):
        self.quiz.time_limit_minutes = 10
        self.quiz.save()
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        AttemptLog.objects.filter(pk=ticket.attempt.pk).update(started_at=timezone.now() - timedelta(minutes=11))

        with self.assertRaises(TimeExpired):
            self.submit(8, attempt_id=ticket.attempt.pk, submission_source='time_expired')
        self.assertFalse(AttemptLog.objects.get(pk=ticket.attempt.pk).is_submitted)

    def test_submit_one_second_late_is_rejected(self):
        self.quiz.time_limit_minutes = 10
        self.quiz.save()
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        AttemptLog.objects.filter(pk=ticket.attempt.pk).update(
            started_at=timezone.now() - timedelta(minutes=10, seconds=1))

        with self.assertRaises(TimeExpired):
            self.submit(8, attempt_id=ticket.attempt.pk, submission_source='time_expired')

    def test_submit_at_deadline_is_accepted(self):
        self.quiz.time_limit_minutes = 10
        self.quiz.save()
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        AttemptLog.objects.filter(pk=ticket.attempt.pk).update(
            started_at=timezone.now() - timedelta(minutes=9, seconds=55))

        result = self.submit(8, attempt_id=ticket.attempt.pk)
        self.assertEqual(result.score, Decimal(8))

    @override_settings(QUIZ_SUBMISSION_GRACE_SECONDS=30)
    def test_submit_within_configured_grace_period(self):
        self.quiz.time_limit_minutes = 10
        self.quiz.save()
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        AttemptLog.objects.filter(pk=ticket.attempt.pk).update(
            started_at=timezone.now() - timedelta(minutes=10, seconds=15))

        result = self.submit(8, attempt_id=ticket.attempt.pk, submission_source='time_expired')
        self.assertEqual(result.score, Decimal(8))

    def test_attempt_of_another_student_is_rejected(self):
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')
        with self.assertRaises(InvalidAttempt):
            self.submit(8, student_id='student-2', attempt_id=ticket.attempt.pk)
        self.assertFalse(AttemptLog.objects.get(pk=ticket.attempt.pk).is_submitted)

    def test_unknown_attempt_is_rejected(self):
        with self.assertRaises(InvalidAttempt):
            self.submit(8, attempt_id=999999)

    def test_attempt_of_unrelated_quiz_is_rejected(self):
        other = Quiz.objects.create(
            teacher=self.teacher, subject=self.subject, section=self.section, quiz_code='GK345678')
        ticket = services.start_attempt(other.pk, 'student-1', 'Ada Student')
        with self.assertRaises(InvalidAttempt):
            self.submit(8, attempt_id=ticket.attempt.pk)

    def test_attempt_of_sibling_quiz_is_treated_as_fresh(self):
        assigned = Quiz.objects.create(
            teacher=self.teacher, subject=self.subject, section=self.other_section, quiz_code='GK456789',
            source_quiz=self.quiz)
        ticket = services.start_attempt(self.quiz.pk, 'student-1', 'Ada Student')

        result = self.submit(8, quiz=assigned, attempt_id=ticket.attempt.pk)

        self.assertEqual(result.attempt.quiz_id, assigned.pk)
        self.assertNotEqual(result.attempt.pk, ticket.attempt.pk)
        self.assertEqual(result.score, Decimal(8))
        self.assertFalse(AttemptLog.objects.get(pk=ticket.attempt.pk).is_submitted)

    def test_unknown_submission_source(self):
        with self.assertRaises(GradingValidationError):
            self.submit(8, submission_source='window_blur')

    def test_malformed_answers(self):
        with self.assertRaises(GradingValidationError):
            services.submit_attempt(self.quiz.pk, 'student-1', 'Ada Student', {"identification": "Paris"})
        self.assertFalse(AttemptLog.objects.exists())

    def test_detail_log_failure_is_reported_not_fatal(self):
        with patch('attempts.services.AttemptAnswer.objects.bulk_create', side_effect=DatabaseError("no such table")):
            result = self.submit(8)

        self.assertFalse(result.details_logged)
        self.assertEqual(result.score, Decimal(8))
        self.assertTrue(AttemptLog.objects.get(pk=result.attempt.pk).is_submitted)
        self.assertTrue(AttemptSummary.objects.filter(quiz=self.quiz, student_id='student-1').exists())
        self.assertFalse(AttemptAnswer.objects.exists())

    def test_attempt_count_and_best_score(self):
        self.submit(5)
        self.submit(8)

        counts = services.attempt_count(self.quiz.pk, 'student-1')
        self.assertEqual(counts, {'attemptCount': 2, 'maxAttempts': 3, 'allowRetake': True})
        self.assertEqual(services.best_score(self.quiz.pk, 'student-1').score, Decimal(8))
        self.assertIsNone(services.best_score(self.quiz.pk, 'student-2'))


class SummaryPolicyTestCase(AttemptTestBase):

    def test_best_only_keeps_highest(self):
        changed = [self.submit(score).summary_changed for score in (5, 8, 3)]
        self.assertEqual(changed, [True, True, False])

        summaries = AttemptSummary.objects.filter(quiz=self.quiz, student_id='student-1')
        self.assertEqual(summaries.count(), 1)
        self.assertEqual(summaries.get().score, Decimal(8))
        self.assertEqual(summaries.get().attempt_number, 2)
        self.assertEqual(summaries.get().slot, AttemptSummary.BEST_ONLY_SLOT)

    def test_best_only_equal_score_keeps_existing(self):
        self.submit(5)
        result = self.submit(5)
        self.assertFalse(result.summary_changed)
        self.assertEqual(result.summary.attempt_number, 1)

    def test_all_attempts_keeps_every_row(self):
        self.quiz.save_best_only = False
        self.quiz.save()
        for score in (5, 8, 3):
            self.submit(score)

        rows = AttemptSummary.objects.filter(quiz=self.quiz, student_id='student-1').order_by('slot')
        self.assertEqual([row.score for row in rows], [Decimal(5), Decimal(8), Decimal(3)])
        self.assertEqual([row.slot for row in rows], [1, 2, 3])

    def test_best_attempt_ties_go_to_latest(self):
        now = timezone.now()
        earlier = AttemptLog(attempt_number=1, score=Decimal(5), submitted_at=now - timedelta(minutes=5),
                             started_at=now - timedelta(minutes=9))
        later = AttemptLog(attempt_number=2, score=Decimal(5), submitted_at=now, started_at=now - timedelta(minutes=3))
        self.assertIs(best_attempt([earlier, later]), later)
        self.assertIsNone(best_attempt([]))

    def test_reconcile_rewrites_best_from_log(self):
        self.submit(5)
        self.submit(3)
        AttemptLog.objects.filter(quiz=self.quiz, attempt_number=2).update(score=Decimal(8))

        self.assertEqual(reconcile_summaries(self.quiz, ['student-1']), 1)
        summary = AttemptSummary.objects.get(quiz=self.quiz, student_id='student-1')
        self.assertEqual(summary.score, Decimal(8))
        self.assertEqual(summary.attempt_number, 2)

        self.assertEqual(reconcile_summaries(self.quiz, ['student-1']), 0)


class AttemptViewsTestCase(AttemptTestBase):

    def setUp(self):
        self.client = Client()

    def post_json(self, url, data):
        return self.client.post(url, json.dumps(data), content_type='application/json')

    def test_start_and_submit(self):
        response = self.post_json('/attempts/start', {
            "quizId": self.quiz.pk, "studentId": "student-1", "studentName": "Ada Student"})
        self.assertEqual(response.status_code, 200)
        started = response.json()
        self.assertEqual(started['attemptNumber'], 1)
        self.assertEqual(started['maxAttempts'], 3)
        self.assertIsNone(started['expiresAt'])

        response = self.post_json('/attempts/submit', {
            "quizId": self.quiz.pk, "studentId": "student-1", "studentName": "Ada Student",
            "attemptId": started['attemptId'], "answers": self.answers_for(5), "submissionSource": "manual_submit"})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['score'], 5)
        self.assertEqual(data['maxScore'], 8)
        self.assertEqual(data['summaryRecord']['score'], 5)
        self.assertTrue(data['detailsLogged'])

        response = self.post_json('/attempts/submit', {
            "quizId": self.quiz.pk, "studentId": "student-1", "studentName": "Ada Student",
            "attemptId": started['attemptId'], "answers": self.answers_for(8)})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['code'], 'already_submitted')

    def test_start_missing_field(self):
        response = self.post_json('/attempts/start', {"quizId": self.quiz.pk, "studentId": "student-1"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'studentName required')

    def test_start_unknown_quiz(self):
        response = self.post_json('/attempts/start', {
            "quizId": 999999, "studentId": "student-1", "studentName": "Ada Student"})
        self.assertEqual(response.status_code, 404)

    def test_start_requires_post(self):
        response = self.client.get('/attempts/start')
        self.assertEqual(response.status_code, 405)

    def test_no_attempts_remaining_view(self):
        self.quiz.max_attempts = 1
        self.quiz.save()
        self.submit(5)
        response = self.post_json('/attempts/start', {
            "quizId": self.quiz.pk, "studentId": "student-1", "studentName": "Ada Student"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['code'], 'no_attempts_remaining')

    def test_count_and_best_score(self):
        self.submit(5)
        self.submit(8)

        response = self.client.get('/attempts/count', {"quizId": self.quiz.pk, "studentId": "student-1"})
        self.assertEqual(response.json(), {'attemptCount': 2, 'maxAttempts': 3, 'allowRetake': True})

        response = self.client.get('/attempts/best-score', {"quizId": self.quiz.pk, "studentId": "student-1"})
        self.assertEqual(response.json(), {'score': 8})

        response = self.client.get('/attempts/best-score', {"quizId": self.quiz.pk})
        self.assertEqual(response.status_code, 400)

    def test_teacher_scores(self):
        self.submit(8)
        response = self.client.get('/attempts/teacher-scores')
        self.assertEqual(response.status_code, 302)

        self.client.login(username='teacher', password='password')
        response = self.client.get('/attempts/teacher-scores', {"sectionId": self.section.pk})
        rows = response.json()['rows']
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['quizcode'], 'GK234567')
        self.assertEqual(rows[0]['score'], 8)

        response = self.client.get('/attempts/teacher-scores', {"sectionId": self.other_section.pk})
        self.assertEqual(response.json()['rows'], [])
