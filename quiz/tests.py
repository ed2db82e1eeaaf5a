import json
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.test import TestCase, Client

from grading.types import QuestionKind
from quiz.forms import QuestionForm
from quiz.models import Question, Quiz, Section, Subject
from quiz.utils import QUIZ_CODE_ALPHABET, as_number, generate_quiz_code, generate_unique_quiz_code


def make_quiz(teacher, subject, section, code, **kwargs):
    return Quiz.objects.create(teacher=teacher, subject=subject, section=section, quiz_code=code, **kwargs)


class QuestionFormTestCase(TestCase):

    def test_valid_multiple_choice(self):
        form = QuestionForm({
            "question": "Capital of France?",
            "quiz_type": "multiple_choice",
            "options": ["Paris", "London"],
            "answerkey": "Paris",
            "score": 2,
        })
        self.assertTrue(form.is_valid(), form.errors)
        fields = form.question_fields()
        self.assertEqual(fields['question_type'], "multiple_choice")
        self.assertEqual(fields['options'], ["Paris", "London"])
        self.assertEqual(fields['points'], Decimal(2))

    def test_multiple_choice_key_must_be_an_option(self):
        form = QuestionForm({
            "question": "Capital of France?",
            "quiz_type": "multiple_choice",
            "options": ["Paris", "London"],
            "answerkey": "Berlin",
        })
        self.assertFalse(form.is_valid())
        self.assertIn('answerkey', form.errors)

    def test_multiple_choice_needs_two_options(self):
        form = QuestionForm({
            "question": "Capital of France?",
            "quiz_type": "multiple_choice",
            "options": ["Paris"],
            "answerkey": "Paris",
        })
        self.assertFalse(form.is_valid())
        self.assertIn('options', form.errors)

    def test_options_accepted_as_json_string(self):
        form = QuestionForm({
            "question": "True or false: water boils at 100C",
            "quiz_type": "tf",
            "options": '["True", "False"]',
            "answerkey": "True",
        })
        self.assertTrue(form.is_valid(), form.errors)
        self.assertIs(form.cleaned_data['quiz_type'], QuestionKind.MULTIPLE_CHOICE)

    def test_identification_and_enumeration_need_a_key(self):
        for quiz_type in ("identification", "enumeration"):
            form = QuestionForm({"question": "Name it", "quiz_type": quiz_type})
            self.assertFalse(form.is_valid())
            self.assertIn('answerkey', form.errors)

    def test_long_answer_key_optional(self):
        form = QuestionForm({"question": "Explain osmosis", "quiz_type": "long_answer"})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.question_fields()['answer_key'], '')
        self.assertEqual(form.question_fields()['options'], [])

    def test_non_positive_score_falls_back_to_one(self):
        for score in (0, -3, None):
            form = QuestionForm({"question": "Who?", "quiz_type": "identification", "answerkey": "Newton",
                                 "score": score})
            self.assertTrue(form.is_valid(), form.errors)
            self.assertEqual(form.cleaned_data['score'], 1)

    def test_unknown_type(self):
        form = QuestionForm({"question": "Match them", "quiz_type": "matching", "answerkey": "x"})
        self.assertFalse(form.is_valid())
        self.assertIn('quiz_type', form.errors)


class QuestionModelTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.teacher = User.objects.create_user(username='teacher', password='password')
        cls.subject = Subject.objects.create(name='Science', slug='science')
        cls.section = Section.objects.create(name='7-A')
        cls.quiz = make_quiz(cls.teacher, cls.subject, cls.section, 'SCI00001')

    def test_clean_normalizes_alias(self):
        question = Question(quiz=self.quiz, question_type='tf', question_text='Sky is blue',
                            answer_key='True', options=['True', 'False'])
        question.clean()
        self.assertEqual(question.question_type, 'multiple_choice')

    def test_clean_rejects_key_outside_options(self):
        question = Question(quiz=self.quiz, question_type='multiple_choice', question_text='Capital?',
                            answer_key='Berlin', options=['Paris', 'London'])
        with self.assertRaises(ValidationError):
            question.clean()

    def test_clean_rejects_non_positive_points(self):
        question = Question(quiz=self.quiz, question_type='identification', question_text='Who?',
                            answer_key='Newton', points=Decimal(0))
        with self.assertRaises(ValidationError):
            question.clean()

    def test_clean_rejects_unknown_type(self):
        question = Question(quiz=self.quiz, question_type='matching', question_text='Match', answer_key='x')
        with self.assertRaises(ValidationError):
            question.clean()

    def test_effective_max_attempts(self):
        self.assertEqual(Quiz(allow_retake=False, max_attempts=None).effective_max_attempts, 1)
        self.assertEqual(Quiz(allow_retake=True, max_attempts=None).effective_max_attempts, 2)
        self.assertEqual(Quiz(allow_retake=False, max_attempts=0).effective_max_attempts, 1)
        self.assertTrue(Quiz(allow_retake=False, max_attempts=3).retake_allowed)
        self.assertFalse(Quiz(allow_retake=False, max_attempts=1).retake_allowed)

    def test_assigned_quiz_reads_source_questions(self):
        Question.objects.create(quiz=self.quiz, question_type='identification', question_text='Who?',
                                answer_key='Newton')
        assigned = make_quiz(self.teacher, self.subject, Section.objects.create(name='7-B'), 'SCI00002',
                             source_quiz=self.quiz)
        self.assertEqual(assigned.source_id, self.quiz.pk)
        self.assertEqual(list(assigned.questions()), list(self.quiz.questions()))


class QuizUtilsTestCase(TestCase):

    def test_as_number(self):
        self.assertEqual(as_number(Decimal("2.00")), 2)
        self.assertIsInstance(as_number(Decimal("2.00")), int)
        self.assertEqual(as_number(Decimal("1.50")), 1.5)
        self.assertEqual(as_number(3), 3)
        self.assertIsNone(as_number(None))

    def test_generate_quiz_code(self):
        code = generate_quiz_code()
        self.assertEqual(len(code), 8)
        self.assertTrue(set(code) <= set(QUIZ_CODE_ALPHABET))

    def test_generate_unique_quiz_code_gives_up(self):
        teacher = User.objects.create_user(username='teacher', password='password')
        subject = Subject.objects.create(name='Math', slug='math')
        section = Section.objects.create(name='8-A')
        make_quiz(teacher, subject, section, 'TAKEN234')

        with patch('quiz.utils.generate_quiz_code', return_value='TAKEN234'):
            with self.assertRaises(RuntimeError):
                generate_unique_quiz_code(max_tries=3)


class QuizViewsTestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.teacher = User.objects.create_user(username='teacher', password='password')
        cls.random_user = User.objects.create_user(username='randomuser', password='random')
        cls.subject = Subject.objects.create(name='Geography', slug='geography')
        cls.section = Section.objects.create(name='9-A')
        cls.other_section = Section.objects.create(name='9-B')
        cls.quiz = make_quiz(cls.teacher, cls.subject, cls.section, 'GEO23456', quiz_name='Capitals',
                             time_limit_minutes=15)

        cls.question_1 = Question.objects.create(
            quiz=cls.quiz, question_type='multiple_choice', question_text='Capital of France?',
            answer_key='Paris', options=['Paris', 'London'], order_index=0)
        cls.question_2 = Question.objects.create(
            quiz=cls.quiz, question_type='enumeration', question_text='Name two rivers',
            answer_key='Nile\nAmazon', points=2, order_index=1)

    def setUp(self):
        self.client = Client()

    def post_json(self, url, data):
        return self.client.post(url, json.dumps(data), content_type='application/json')

    def test_quiz_by_code_hides_answer_keys(self):
        response = self.client.get('/quiz/code/geo23456')
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertEqual(data['quiz']['id'], self.quiz.pk)
        self.assertEqual(data['quiz']['timeLimitMinutes'], 15)
        self.assertEqual(data['quiz']['maxAttempts'], 1)
        self.assertEqual([q['id'] for q in data['questions']], [self.question_1.pk, self.question_2.pk])
        self.assertTrue(all('answerkey' not in q for q in data['questions']))
        self.assertEqual(data['questions'][1]['score'], 2)

    def test_quiz_by_code_not_found(self):
        response = self.client.get('/quiz/code/NOPE2345')
        self.assertEqual(response.status_code, 404)

    def test_add_questions_requires_login(self):
        response = self.post_json(f'/quiz/{self.quiz.pk}/questions', {"question": "Who?"})
        self.assertEqual(response.status_code, 302)

    def test_add_questions_forbidden_for_other_teacher(self):
        self.client.login(username='randomuser', password='random')
        response = self.post_json(f'/quiz/{self.quiz.pk}/questions', {
            "question": "Longest river?", "quiz_type": "identification", "answerkey": "Nile"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {"error": "You are not allowed to access this quiz.", "code": "forbidden"})

    def test_add_single_question(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/{self.quiz.pk}/questions', {
            "question": "Longest river?", "quiz_type": "identification", "answerkey": "Nile", "score": 3})
        self.assertEqual(response.status_code, 201)

        data = response.json()
        self.assertEqual(data['answerkey'], 'Nile')
        self.assertEqual(data['score'], 3)

        question = Question.objects.get(pk=data['id'])
        self.assertEqual(question.quiz_id, self.quiz.pk)
        self.assertEqual(question.order_index, 2)

    def test_add_question_batch(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/{self.quiz.pk}/questions', {"questions": [
            {"question": "Largest ocean?", "quiz_type": "identification", "answerkey": "Pacific"},
            {"question": "Capital of Peru?", "quiz_type": "mc", "options": ["Lima", "Quito"], "answerkey": "Lima"},
        ]})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()), 2)
        self.assertEqual(Question.objects.filter(quiz=self.quiz).count(), 4)

    def test_add_question_batch_is_all_or_nothing(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/{self.quiz.pk}/questions', {"questions": [
            {"question": "Largest ocean?", "quiz_type": "identification", "answerkey": "Pacific"},
            {"question": "Capital of Peru?", "quiz_type": "multiple_choice", "options": ["Lima"], "answerkey": "Lima"},
        ]})
        self.assertEqual(response.status_code, 400)
        self.assertIn('options', response.json()['form_errors'])
        self.assertEqual(Question.objects.filter(quiz=self.quiz).count(), 2)

    def test_add_question_to_assigned_quiz_goes_to_source(self):
        assigned = make_quiz(self.teacher, self.subject, self.other_section, 'GEO34567', source_quiz=self.quiz)
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/{assigned.pk}/questions', {
            "question": "Longest river?", "quiz_type": "identification", "answerkey": "Nile"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['quizId'], self.quiz.pk)
        self.assertFalse(Question.objects.filter(quiz=assigned).exists())

    def test_add_question_invalid_json(self):
        self.client.login(username='teacher', password='password')
        response = self.client.post(f'/quiz/{self.quiz.pk}/questions', "{not json", content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'validation_error')

    def test_edit_question(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/questions/{self.question_1.pk}/edit', {"answerkey": "London", "score": 2})
        self.assertEqual(response.status_code, 200)

        self.question_1.refresh_from_db()
        self.assertEqual(self.question_1.answer_key, 'London')
        self.assertEqual(self.question_1.points, Decimal(2))

    def test_edit_question_rejects_key_outside_options(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/questions/{self.question_1.pk}/edit', {"answerkey": "Berlin"})
        self.assertEqual(response.status_code, 400)
        self.assertIn('answer_key', response.json()['form_errors'])

        self.question_1.refresh_from_db()
        self.assertEqual(self.question_1.answer_key, 'Paris')

    def test_edit_question_forbidden_for_other_teacher(self):
        self.client.login(username='randomuser', password='random')
        response = self.post_json(f'/quiz/questions/{self.question_1.pk}/edit', {"answerkey": "London"})
        self.assertEqual(response.status_code, 403)

    def test_duplicate_quiz(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/{self.quiz.pk}/copy', {"action": "duplicate", "sectionId": self.other_section.pk})
        self.assertEqual(response.status_code, 201)

        data = response.json()
        copy = Quiz.objects.get(pk=data['id'])
        self.assertIsNone(copy.source_quiz_id)
        self.assertNotEqual(copy.quiz_code, self.quiz.quiz_code)
        self.assertEqual(copy.section, self.other_section)
        self.assertEqual(Question.objects.filter(quiz=copy).count(), 2)
        self.assertEqual(copy.quiz_name, 'Capitals')

    def test_assign_quiz(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/{self.quiz.pk}/copy', {"action": "assign", "sectionId": self.other_section.pk})
        self.assertEqual(response.status_code, 201)

        assigned = Quiz.objects.get(pk=response.json()['id'])
        self.assertEqual(assigned.source_quiz_id, self.quiz.pk)
        self.assertFalse(Question.objects.filter(quiz=assigned).exists())
        self.assertEqual(assigned.questions().count(), 2)

        # assigning an assigned quiz still points at the source quiz
        response = self.post_json(f'/quiz/{assigned.pk}/copy', {"action": "assign", "sectionId": self.section.pk})
        self.assertEqual(response.json()['sourceQuizId'], self.quiz.pk)

    def test_copy_quiz_invalid_action(self):
        self.client.login(username='teacher', password='password')
        response = self.post_json(f'/quiz/{self.quiz.pk}/copy', {"action": "move", "sectionId": self.other_section.pk})
        self.assertEqual(response.status_code, 400)
        self.assertIn('action', response.json()['form_errors'])


class QuizAdminTestCase(TestCase):

    def test_changelist_shows_quizzes_per_teacher(self):
        admin_user = User.objects.create_superuser(username='admin', password='password', email='admin@example.com')
        subject = Subject.objects.create(name='Art', slug='art')
        section = Section.objects.create(name='12-A')
        make_quiz(admin_user, subject, section, 'ART23456')

        client = Client()
        client.login(username='admin', password='password')
        response = client.get('/admin/quiz/quiz/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['total_quizzes'], 1)
        self.assertContains(response, 'admin: 1')
