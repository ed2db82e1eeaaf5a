from django.urls import path

from . import views

urlpatterns = [
    path('code/<str:code>', views.quiz_by_code, name='quiz_by_code'),
    path('<int:pk>/questions', views.add_questions, name='add_questions'),
    path('<int:pk>/copy', views.copy_quiz, name='copy_quiz'),
    path('questions/<int:pk>/edit', views.edit_question, name='edit_question'),
]
