import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "Quiz_Grader.settings")

app = Celery("Quiz_Grader")

# Read CELERY_* keys from Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
