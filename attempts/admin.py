from django.contrib import admin

from attempts.models import AttemptAnswer, AttemptLog, AttemptSummary


class AttemptAnswerInline(admin.TabularInline):
    model = AttemptAnswer
    extra = 0
    readonly_fields = ('question_id', 'question_type', 'answer_text', 'is_correct', 'points_awarded', 'matched_items')


class AttemptLogAdmin(admin.ModelAdmin):
    list_display = ('student_name', 'student_id', 'quiz', 'attempt_number', 'score', 'max_score',
                    'is_submitted', 'submission_source', 'submitted_at')
    list_filter = ('is_submitted', 'submission_source', 'section')
    search_fields = ('student_name', 'student_id', 'quiz__quiz_code')
    readonly_fields = ('answers',)
    inlines = [AttemptAnswerInline]


class AttemptSummaryAdmin(admin.ModelAdmin):
    list_display = ('student_name', 'student_id', 'quiz', 'slot', 'attempt_number', 'score', 'max_score')
    list_filter = ('section', 'subject')
    search_fields = ('student_name', 'student_id', 'quiz__quiz_code')


admin.site.register(AttemptLog, AttemptLogAdmin)
admin.site.register(AttemptSummary, AttemptSummaryAdmin)
