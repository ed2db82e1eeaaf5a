from decimal import Decimal

from django import forms

from grading.types import QuestionKind, coerce_question_kind, parse_options
from quiz.models import Section


class QuestionForm(forms.Form):
    question = forms.CharField(label="Question")
    quiz_type = forms.CharField(label="Question Type", required=False, initial=QuestionKind.MULTIPLE_CHOICE.value)
    options = forms.JSONField(required=False)
    answerkey = forms.CharField(label="Answer Key", required=False, strip=True)
    score = forms.DecimalField(label="Points", required=False, max_digits=7, decimal_places=2)
    image_url = forms.URLField(required=False)

    def clean_quiz_type(self):
        raw = self.cleaned_data.get('quiz_type') or QuestionKind.MULTIPLE_CHOICE.value
        kind = coerce_question_kind(raw)
        if kind is None:
            raise forms.ValidationError(f"Unknown question type {raw!r}")
        return kind

    def clean_score(self):
        score = self.cleaned_data.get('score')
        # non-positive or missing points fall back to 1
        if score is None or score <= 0:
            return 1
        return score

    def clean(self):
        cleaned_data = super().clean()
        kind = cleaned_data.get('quiz_type')
        answer_key = cleaned_data.get('answerkey') or ''

        if kind is QuestionKind.MULTIPLE_CHOICE:
            options = list(parse_options(cleaned_data.get('options')))
            if len(options) < 2:
                self.add_error('options', "Multiple choice requires at least 2 options")
            elif not answer_key:
                self.add_error('answerkey', "Answer key required for multiple choice")
            elif answer_key not in options:
                self.add_error('answerkey', "Answer key must be one of the options")
            cleaned_data['options'] = options
        elif kind is not None:
            if kind in (QuestionKind.IDENTIFICATION, QuestionKind.ENUMERATION) and not answer_key:
                self.add_error('answerkey', f"Answer key required for {kind.value.replace('_', ' ')}")
            cleaned_data['options'] = []

        return cleaned_data

    def question_fields(self):
        data = self.cleaned_data
        return {
            'question_type': data['quiz_type'].value,
            'question_text': data['question'].strip(),
            'answer_key': data.get('answerkey') or '',
            'options': data['options'],
            'points': data['score'],
            'image_url': data.get('image_url') or '',
        }


class QuestionEditForm(forms.Form):
    answerkey = forms.CharField(label="Answer Key", required=False, strip=True)
    score = forms.DecimalField(label="Points", required=False, max_digits=7, decimal_places=2, min_value=Decimal("0.01"))
    options = forms.JSONField(required=False)
    question = forms.CharField(label="Question", required=False)


class QuizCopyForm(forms.Form):
    action = forms.ChoiceField(choices=[('duplicate', 'Duplicate'), ('assign', 'Assign')])
    section = forms.ModelChoiceField(queryset=Section.objects.all(), to_field_name='pk')
    period = forms.CharField(max_length=64, required=False)
    quiz_name = forms.CharField(max_length=128, required=False)
