from django.conf import settings
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import models

from grading.types import GradableQuestion, QuestionKind, coerce_question_kind, parse_options

QUESTION_TYPE_CHOICES = [
    (QuestionKind.MULTIPLE_CHOICE.value, 'Multiple choice'),
    (QuestionKind.IDENTIFICATION.value, 'Identification'),
    (QuestionKind.ENUMERATION.value, 'Enumeration'),
    (QuestionKind.LONG_ANSWER.value, 'Long answer'),
]


class Subject(models.Model):
    name = models.CharField(max_length=128)
    slug = models.SlugField(max_length=128, unique=True)

    def __str__(self):
        return self.name


class Section(models.Model):
    name = models.CharField(max_length=64, unique=True)

    def __str__(self):
        return self.name


class Quiz(models.Model):
    teacher = models.ForeignKey(User, on_delete=models.CASCADE)
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE)
    section = models.ForeignKey(Section, on_delete=models.CASCADE)
    quiz_code = models.CharField(max_length=16, unique=True)
    quiz_name = models.CharField(max_length=128, blank=True, default='')
    period = models.CharField(max_length=64, blank=True, default='')
    time_limit_minutes = models.PositiveIntegerField(null=True, blank=True)
    allow_retake = models.BooleanField(default=False)
    max_attempts = models.PositiveIntegerField(null=True, blank=True, default=1)
    save_best_only = models.BooleanField(default=True)
    # Assigned copies share the question set of their source quiz
    source_quiz = models.ForeignKey(
        'self', null=True, blank=True, on_delete=models.CASCADE, related_name='assigned_quizzes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.quiz_code} {self.quiz_name}'.strip()

    @property
    def source_id(self):
        return self.source_quiz_id or self.pk

    @property
    def effective_max_attempts(self):
        raw = self.max_attempts
        if raw is None:
            raw = settings.QUIZ_DEFAULT_MAX_ATTEMPTS if self.allow_retake else 1
        return max(1, raw)

    @property
    def retake_allowed(self):
        return self.allow_retake or self.effective_max_attempts > 1

    def questions(self):
        return Question.objects.filter(quiz_id=self.source_id).order_by('order_index', 'id')


class Question(models.Model):
    # Always the source quiz, never an assigned copy
    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE)
    question_type = models.CharField(max_length=32, choices=QUESTION_TYPE_CHOICES)
    question_text = models.TextField()
    answer_key = models.TextField(blank=True, default='')
    options = models.JSONField(default=list, blank=True)
    points = models.DecimalField(max_digits=7, decimal_places=2, default=1)
    image_url = models.URLField(blank=True, default='')
    order_index = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.question_text[:50]

    def clean(self):
        kind = coerce_question_kind(self.question_type)
        if kind is None:
            raise ValidationError({'question_type': f'Unknown question type {self.question_type!r}'})
        self.question_type = kind.value

        if self.points is not None and self.points <= 0:
            raise ValidationError({'points': 'Points must be positive'})

        if kind is QuestionKind.MULTIPLE_CHOICE:
            options = parse_options(self.options)
            if len(options) < 2:
                raise ValidationError({'options': 'Multiple choice requires at least 2 options'})
            if self.answer_key.strip() not in options:
                raise ValidationError({'answer_key': 'Answer key must be one of the options'})
        elif kind is not QuestionKind.LONG_ANSWER and not self.answer_key.strip():
            raise ValidationError({'answer_key': f'Answer key required for {kind.value.replace("_", " ")}'})

    def to_gradable(self):
        return GradableQuestion.from_question(self)
