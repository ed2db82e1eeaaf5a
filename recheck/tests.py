import json
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth.models import User
from django.test import TestCase, Client

from attempts.models import AttemptLog, AttemptSummary
from attempts.services import submit_attempt
from grading.exceptions import NotFound
from quiz.models import Question, Quiz, Section, Subject
from recheck.services import RecheckReport, load_grading_key, recheck_section
from recheck.tasks import recheck_section_task


class RecheckTestBase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.teacher = User.objects.create_user(username='teacher', password='password')
        cls.random_user = User.objects.create_user(username='randomuser', password='random')
        cls.subject = Subject.objects.create(name='History', slug='history')
        cls.section = Section.objects.create(name='11-A')
        cls.other_section = Section.objects.create(name='11-B')

        cls.quiz = Quiz.objects.create(
            teacher=cls.teacher, subject=cls.subject, section=cls.section, quiz_code='HIS23456',
            allow_retake=True, max_attempts=5)
        cls.capital = Question.objects.create(
            quiz=cls.quiz, question_type='identification', question_text='Capital of France?',
            answer_key='Paris', points=5, order_index=0)
        cls.scientist = Question.objects.create(
            quiz=cls.quiz, question_type='identification', question_text='Who described gravity?',
            answer_key='Newton', points=3, order_index=1)

    def submit(self, capital, scientist, quiz=None, student_id='student-1'):
        quiz = quiz or self.quiz
        raw = {"identification": [
            {"questionId": self.capital.pk, "answer": capital},
            {"questionId": self.scientist.pk, "answer": scientist},
        ]}
        return submit_attempt(quiz.pk, student_id, 'Ada Student', raw)

    def recheck(self, section=None, teacher=None):
        teacher = teacher or self.teacher
        section = section or self.section
        return recheck_section(teacher_id=teacher.pk, subject_id=self.subject.pk, section_id=section.pk)

    def summary(self, quiz=None, student_id='student-1'):
        return AttemptSummary.objects.get(quiz=quiz or self.quiz, student_id=student_id)


class RecheckServiceTestCase(RecheckTestBase):

    def test_recheck_without_key_changes_touches_nothing(self):
        self.submit('Paris', 'Newton')
        self.submit('London', 'Newton', student_id='student-2')

        report = self.recheck()
        self.assertEqual(report, RecheckReport(total_attempts=2))

    def test_recheck_converges(self):
        self.submit('London', 'Newton')
        self.capital.answer_key = 'London'
        self.capital.save()

        first = self.recheck()
        self.assertEqual(first.total_attempts, 1)
        self.assertEqual(first.updated_log_count, 1)
        self.assertEqual(first.updated_summary_count, 1)

        second = self.recheck()
        self.assertEqual(second.total_attempts, 1)
        self.assertEqual(second.updated_log_count, 0)
        self.assertEqual(second.updated_summary_count, 0)

    def test_key_change_regrades_log_and_summary(self):
        result = self.submit('London', 'Newton')
        self.assertEqual(result.score, Decimal(3))

        self.capital.answer_key = 'London'
        self.capital.save()
        self.recheck()

        attempt = AttemptLog.objects.get(pk=result.attempt.pk)
        self.assertEqual(attempt.score, Decimal(8))
        self.assertEqual(attempt.max_score, Decimal(8))
        self.assertEqual(self.summary().score, Decimal(8))

    def test_points_change_updates_max_score(self):
        result = self.submit('Paris', 'Newton')
        self.scientist.points = Decimal(7)
        self.scientist.save()

        report = self.recheck()
        self.assertEqual(report.updated_log_count, 1)
        attempt = AttemptLog.objects.get(pk=result.attempt.pk)
        self.assertEqual(attempt.max_score, Decimal(12))
        self.assertEqual(self.summary().max_score, Decimal(12))

    def test_best_only_ties_go_to_latest_submission(self):
        self.submit('Paris', 'Newton')
        self.submit('Paris', '')
        self.assertEqual(self.summary().attempt_number, 1)

        self.scientist.answer_key = 'Einstein'
        self.scientist.save()
        report = self.recheck()

        self.assertEqual(report.updated_log_count, 1)
        self.assertEqual(report.updated_summary_count, 1)
        summary = self.summary()
        self.assertEqual(summary.score, Decimal(5))
        self.assertEqual(summary.attempt_number, 2)

    def test_all_attempts_rows_are_regraded(self):
        self.quiz.save_best_only = False
        self.quiz.save()
        self.submit('London', 'Newton')
        self.submit('London', '')

        self.capital.answer_key = 'London'
        self.capital.save()
        report = self.recheck()

        self.assertEqual(report.updated_log_count, 2)
        self.assertEqual(report.updated_summary_count, 2)
        rows = AttemptSummary.objects.filter(quiz=self.quiz, student_id='student-1').order_by('slot')
        self.assertEqual([row.score for row in rows], [Decimal(8), Decimal(5)])

    def test_empty_question_bank_leaves_scores_alone(self):
        result = self.submit('Paris', 'Newton')
        Question.objects.filter(quiz=self.quiz).delete()

        report = self.recheck()
        self.assertEqual(report, RecheckReport())
        self.assertEqual(AttemptLog.objects.get(pk=result.attempt.pk).score, Decimal(8))
        self.assertEqual(self.summary().score, Decimal(8))

    def test_malformed_stored_answers_are_skipped(self):
        broken = self.submit('Paris', 'Newton')
        self.submit('London', 'Newton', student_id='student-2')
        AttemptLog.objects.filter(pk=broken.attempt.pk).update(answers={"identification": "Paris"})

        self.capital.answer_key = 'London'
        self.capital.save()
        report = self.recheck()

        self.assertEqual(report.skipped_attempts, 1)
        self.assertEqual(report.total_attempts, 1)
        self.assertEqual(report.updated_log_count, 1)
        self.assertEqual(AttemptLog.objects.get(pk=broken.attempt.pk).score, Decimal(8))
        self.assertEqual(self.summary(student_id='student-2').score, Decimal(8))

    def test_open_attempts_are_ignored(self):
        AttemptLog.objects.create(
            quiz=self.quiz, student_id='student-1', student_name='Ada Student', attempt_number=1,
            section=self.section, subject=self.subject, started_at=self.quiz.created_at)
        self.assertEqual(self.recheck().total_attempts, 0)

    def test_assigned_quiz_is_regraded_against_source(self):
        assigned = Quiz.objects.create(
            teacher=self.teacher, subject=self.subject, section=self.other_section, quiz_code='HIS34567',
            source_quiz=self.quiz)
        self.submit('London', 'Newton', quiz=assigned)
        self.submit('London', 'Newton')

        self.capital.answer_key = 'London'
        self.capital.save()
        report = self.recheck(section=self.other_section)

        # only the other section's attempt is touched
        self.assertEqual(report.total_attempts, 1)
        self.assertEqual(self.summary(quiz=assigned).score, Decimal(8))
        self.assertEqual(self.summary().score, Decimal(3))

    def test_other_teachers_quizzes_are_not_touched(self):
        self.submit('London', 'Newton')
        self.capital.answer_key = 'London'
        self.capital.save()

        report = self.recheck(teacher=self.random_user)
        self.assertEqual(report, RecheckReport())
        self.assertEqual(self.summary().score, Decimal(3))

    def test_unknown_subject_or_section(self):
        with self.assertRaises(NotFound):
            recheck_section(teacher_id=self.teacher.pk, subject_id=999999, section_id=self.section.pk)
        with self.assertRaises(NotFound):
            recheck_section(teacher_id=self.teacher.pk, subject_id=self.subject.pk, section_id=999999)

    def test_grading_key_is_loaded_once_per_source(self):
        cache = {}
        key = load_grading_key(self.quiz.pk, cache)
        self.assertEqual(key.gradable_count, 2)
        with self.assertNumQueries(0):
            self.assertIs(load_grading_key(self.quiz.pk, cache), key)

    def test_task_returns_report(self):
        self.submit('Paris', 'Newton')
        result = recheck_section_task(self.teacher.pk, self.subject.pk, self.section.pk)
        self.assertEqual(result, {
            'total_attempts': 1, 'updated_log_count': 0, 'updated_summary_count': 0, 'skipped_attempts': 0})


class RecheckViewTestCase(RecheckTestBase):

    def setUp(self):
        self.client = Client()

    def post_json(self, data):
        return self.client.post('/recheck/section', json.dumps(data), content_type='application/json')

    def test_login_required(self):
        response = self.post_json({"subjectId": self.subject.pk, "sectionId": self.section.pk})
        self.assertEqual(response.status_code, 302)

    def test_recheck(self):
        self.submit('London', 'Newton')
        self.capital.answer_key = 'London'
        self.capital.save()

        self.client.login(username='teacher', password='password')
        response = self.post_json({"subjectId": self.subject.pk, "sectionId": self.section.pk})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            "ok": True, "totalAttempts": 1, "updatedLogCount": 1, "updatedSummaryCount": 1, "skippedAttempts": 0})

    def test_invalid_ids(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json({"subjectId": "history", "sectionId": self.section.pk})
        self.assertEqual(response.status_code, 400)

        response = self.post_json({"sectionId": self.section.pk})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'subjectId required')

    def test_unknown_section(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json({"subjectId": self.subject.pk, "sectionId": 999999})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['code'], 'not_found')

    @patch('recheck.views.recheck_section_task.delay_on_commit')
    def test_background_recheck(self, delay_on_commit):
        self.client.login(username='teacher', password='password')
        response = self.post_json({"subjectId": self.subject.pk, "sectionId": self.section.pk, "background": True})

        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json(), {"ok": True, "queued": True})
        delay_on_commit.assert_called_once_with(self.teacher.pk, self.subject.pk, self.section.pk)
