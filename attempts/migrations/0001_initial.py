import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('quiz', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='AttemptLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('student_id', models.CharField(max_length=128)),
                ('student_name', models.CharField(max_length=255)),
                ('attempt_number', models.PositiveIntegerField()),
                ('started_at', models.DateTimeField()),
                ('submitted_at', models.DateTimeField(blank=True, null=True)),
                ('is_submitted', models.BooleanField(default=False)),
                ('answers', models.JSONField(blank=True, null=True)),
                ('score', models.DecimalField(blank=True, decimal_places=2, max_digits=9, null=True)),
                ('max_score', models.DecimalField(blank=True, decimal_places=2, max_digits=9, null=True)),
                ('submission_source', models.CharField(blank=True, choices=[('manual_submit', 'Manual submit'), ('tab_switch', 'Auto submit (tab switch)'), ('tab_close', 'Auto submit (tab closed)'), ('time_expired', 'Auto submit (time expired)')], default='', max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('quiz', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='quiz.quiz')),
                ('section', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to='quiz.section')),
                ('subject', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to='quiz.subject')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['quiz', 'student_id'], name='attempts_at_quiz_id_3b6c1e_idx'),
                    models.Index(fields=['section', 'is_submitted'], name='attempts_at_section_8f2d4a_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('quiz', 'student_id', 'attempt_number'), name='unique_attempt_number_per_student'),
                    models.UniqueConstraint(condition=models.Q(('is_submitted', False)), fields=('quiz', 'student_id'), name='unique_open_attempt_per_student'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AttemptAnswer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('question_id', models.CharField(max_length=64)),
                ('question_type', models.CharField(max_length=32)),
                ('answer_text', models.TextField(blank=True, default='')),
                ('is_correct', models.BooleanField(default=False)),
                ('points_awarded', models.DecimalField(decimal_places=2, default=0, max_digits=9)),
                ('matched_items', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('attempt', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='answer_details', to='attempts.attemptlog')),
            ],
        ),
        migrations.CreateModel(
            name='AttemptSummary',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('student_id', models.CharField(max_length=128)),
                ('student_name', models.CharField(max_length=255)),
                ('slot', models.PositiveIntegerField(default=0)),
                ('attempt_number', models.PositiveIntegerField()),
                ('score', models.DecimalField(decimal_places=2, max_digits=9)),
                ('max_score', models.DecimalField(decimal_places=2, max_digits=9)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('quiz', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='quiz.quiz')),
                ('section', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to='quiz.section')),
                ('subject', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to='quiz.subject')),
            ],
            options={
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('quiz', 'student_id', 'slot'), name='unique_summary_slot'),
                ],
            },
        ),
    ]
