from django.urls import path

from . import views

urlpatterns = [
    path('start', views.start_attempt, name='start_attempt'),
    path('submit', views.submit_attempt, name='submit_attempt'),
    path('count', views.attempt_count, name='attempt_count'),
    path('best-score', views.best_score, name='best_score'),
    path('teacher-scores', views.teacher_scores, name='teacher_scores'),
]
