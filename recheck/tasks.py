from celery import shared_task

import logging

from recheck.services import recheck_section

logger = logging.getLogger("django_quiz")


@shared_task
def recheck_section_task(teacher_id, subject_id, section_id):
    report = recheck_section(teacher_id=teacher_id, subject_id=subject_id, section_id=section_id)
    logger.info(f"Background recheck for subject {subject_id}, section {section_id} done")
    return report.as_dict()
