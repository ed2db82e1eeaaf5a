from django.contrib import admin
from django.db.models import Count
from quiz.models import Quiz, Question, Section, Subject


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 0
    fields = ('order_index', 'question_type', 'question_text', 'answer_key', 'options', 'points')


class QuizAdmin(admin.ModelAdmin):
    list_display = ('quiz_code', 'quiz_name', 'teacher', 'subject', 'section', 'save_best_only', 'source_quiz')
    list_filter = ('teacher', 'subject', 'section', 'save_best_only')
    search_fields = ('quiz_code', 'quiz_name', 'teacher__username')
    inlines = [QuestionInline]

    change_list_template = "admin/quiz_changelist.html"

    def changelist_view(self, request, extra_context=None):
        quizzes_per_teacher = (
            Quiz.objects.values('teacher__username')
            .annotate(count=Count('id'))
            .order_by('-count')
        )

        extra_context = extra_context or {}
        extra_context['total_quizzes'] = Quiz.objects.count()
        extra_context['quizzes_per_teacher'] = quizzes_per_teacher

        return super().changelist_view(request, extra_context=extra_context)


class QuestionAdmin(admin.ModelAdmin):
    list_display = ('question_text', 'question_type', 'quiz', 'points')
    list_filter = ('question_type',)
    search_fields = ('question_text', 'quiz__quiz_code')


admin.site.register(Quiz, QuizAdmin)
admin.site.register(Question, QuestionAdmin)
admin.site.register(Subject)
admin.site.register(Section)
