import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="LearningPlanStructure",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("goal", models.CharField(max_length=500)),
                ("total_weeks", models.PositiveIntegerField()),
                ("daily_commitment", models.PositiveIntegerField()),
                ("structure", models.JSONField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="learning_plans", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "constraints": [models.UniqueConstraint(fields=("user", "goal"), name="unique_plan_goal_per_user")],
            },
        ),
        migrations.CreateModel(
            name="GeneratedWeeklyContent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("week_number", models.PositiveIntegerField()),
                ("content_data", models.JSONField()),
                ("generated_based_on", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("plan", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="weekly_contents", to="ai.learningplanstructure")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="weekly_contents", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["week_number"],
                "constraints": [models.UniqueConstraint(fields=("plan", "week_number", "user"), name="unique_weekly_content")],
            },
        ),
        migrations.CreateModel(
            name="DailyContent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("week_number", models.PositiveIntegerField()),
                ("day_number", models.PositiveIntegerField()),
                ("content", models.JSONField(blank=True, null=True)),
                ("resources", models.JSONField(blank=True, null=True)),
                ("exercises", models.JSONField(blank=True, null=True)),
                ("generated_based_on", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("plan", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="daily_contents", to="ai.learningplanstructure")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="daily_contents", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["week_number", "day_number"],
                "constraints": [models.UniqueConstraint(fields=("plan", "week_number", "day_number", "user"), name="unique_daily_content")],
            },
        ),
    ]
