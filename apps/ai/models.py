from django.conf import settings
from django.db import models


class LearningPlanStructure(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='learning_plans')
    goal = models.CharField(max_length=500)
    total_weeks = models.PositiveIntegerField()
    daily_commitment = models.PositiveIntegerField()
    structure = models.JSONField()  # versioned plan_structure document
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['user', 'goal'], name='unique_plan_goal_per_user'),
        ]

    def __str__(self):
        return f"{self.goal} ({self.total_weeks} weeks)"


class GeneratedWeeklyContent(models.Model):
    plan = models.ForeignKey(LearningPlanStructure, on_delete=models.CASCADE, related_name='weekly_contents')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='weekly_contents')
    week_number = models.PositiveIntegerField()
    content_data = models.JSONField()  # versioned weekly_content document
    generated_based_on = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['week_number']
        constraints = [
            models.UniqueConstraint(fields=['plan', 'week_number', 'user'], name='unique_weekly_content'),
        ]


class DailyContent(models.Model):
    plan = models.ForeignKey(LearningPlanStructure, on_delete=models.CASCADE, related_name='daily_contents')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='daily_contents')
    week_number = models.PositiveIntegerField()
    day_number = models.PositiveIntegerField()
    content = models.JSONField(null=True, blank=True)  # daily_lesson
    resources = models.JSONField(null=True, blank=True)  # daily_resources
    exercises = models.JSONField(null=True, blank=True)  # daily_exercises
    generated_based_on = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['week_number', 'day_number']
        constraints = [
            models.UniqueConstraint(
                fields=['plan', 'week_number', 'day_number', 'user'], name='unique_daily_content'
            ),
        ]
