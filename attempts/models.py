from django.db import models
from django.db.models import Q

from quiz.models import Quiz, Section, Subject

SUBMISSION_SOURCE_CHOICES = [
    ('manual_submit', 'Manual submit'),
    ('tab_switch', 'Auto submit (tab switch)'),
    ('tab_close', 'Auto submit (tab closed)'),
    ('time_expired', 'Auto submit (time expired)'),
]


class AttemptLog(models.Model):
    """
    One row per attempt. Append-only once submitted: only a recheck may
    rewrite score and max_score afterwards.
    """

    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE)
    student_id = models.CharField(max_length=128)
    student_name = models.CharField(max_length=255)
    attempt_number = models.PositiveIntegerField()
    subject = models.ForeignKey(Subject, null=True, blank=True, on_delete=models.SET_NULL)
    section = models.ForeignKey(Section, null=True, blank=True, on_delete=models.SET_NULL)
    started_at = models.DateTimeField()
    submitted_at = models.DateTimeField(null=True, blank=True)
    is_submitted = models.BooleanField(default=False)
    answers = models.JSONField(null=True, blank=True)
    score = models.DecimalField(max_digits=9, decimal_places=2, null=True, blank=True)
    max_score = models.DecimalField(max_digits=9, decimal_places=2, null=True, blank=True)
    submission_source = models.CharField(max_length=32, choices=SUBMISSION_SOURCE_CHOICES, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['quiz', 'student_id', 'attempt_number'], name='unique_attempt_number_per_student'),
            models.UniqueConstraint(
                fields=['quiz', 'student_id'], condition=Q(is_submitted=False), name='unique_open_attempt_per_student'),
        ]
        indexes = [
            models.Index(fields=['quiz', 'student_id'], name='attempts_at_quiz_id_3b6c1e_idx'),
            models.Index(fields=['section', 'is_submitted'], name='attempts_at_section_8f2d4a_idx'),
        ]

    def __str__(self):
        return f'{self.student_name} quiz={self.quiz_id} #{self.attempt_number}'


class AttemptAnswer(models.Model):
    """Per-question answer history, secondary to the attempt log."""

    attempt = models.ForeignKey(AttemptLog, on_delete=models.CASCADE, related_name='answer_details')
    question_id = models.CharField(max_length=64)
    question_type = models.CharField(max_length=32)
    answer_text = models.TextField(blank=True, default='')
    is_correct = models.BooleanField(default=False)
    points_awarded = models.DecimalField(max_digits=9, decimal_places=2, default=0)
    matched_items = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


class AttemptSummary(models.Model):
    """
    Denormalized score record.

    `slot` is 0 for quizzes that keep only the best attempt and the attempt
    number for quizzes that keep every attempt, so one constraint covers both
    policies.
    """

    BEST_ONLY_SLOT = 0

    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE)
    student_id = models.CharField(max_length=128)
    student_name = models.CharField(max_length=255)
    slot = models.PositiveIntegerField(default=BEST_ONLY_SLOT)
    attempt_number = models.PositiveIntegerField()
    score = models.DecimalField(max_digits=9, decimal_places=2)
    max_score = models.DecimalField(max_digits=9, decimal_places=2)
    subject = models.ForeignKey(Subject, null=True, blank=True, on_delete=models.SET_NULL)
    section = models.ForeignKey(Section, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['quiz', 'student_id', 'slot'], name='unique_summary_slot'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.student_name} quiz={self.quiz_id} {self.score}/{self.max_score}'
