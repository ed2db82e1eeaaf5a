from django.urls import path

from . import views

urlpatterns = [
    path('section', views.recheck_section_view, name='recheck_section'),
]
