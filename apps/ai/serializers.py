from rest_framework import serializers

from .models import LearningPlanStructure


class PlanStructureRequestSerializer(serializers.Serializer):
    goal = serializers.CharField(max_length=500)
    total_weeks = serializers.IntegerField(min_value=1, max_value=52)
    daily_commitment = serializers.IntegerField(min_value=1, max_value=24 * 60)


class WeeklyContentRequestSerializer(serializers.Serializer):
    plan_id = serializers.IntegerField(min_value=1)
    week_number = serializers.IntegerField(min_value=1)
    user_progress = serializers.DictField(required=False, allow_empty=True)


class GoalValidationRequestSerializer(serializers.Serializer):
    goal = serializers.CharField(max_length=500)


class GoalValidationResultSerializer(serializers.Serializer):
    appropriate = serializers.BooleanField()
    reason = serializers.CharField()


class LearningPlanSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = LearningPlanStructure
        fields = ['id', 'goal', 'total_weeks', 'daily_commitment', 'created_at', 'updated_at']
