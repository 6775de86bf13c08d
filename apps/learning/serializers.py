from rest_framework import serializers

from .models import Goal, StudySession, split_tags


class StudySessionSerializer(serializers.ModelSerializer):
    class Meta:
        model = StudySession
        fields = [
            'id', 'topic', 'duration_minutes', 'notes', 'date', 'rating',
            'tags', 'reflection', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_topic(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("This field may not be blank.")
        return value

    def validate_tags(self, value):
        return ",".join(split_tags(value))


class SessionFilterSerializer(serializers.Serializer):
    topic = serializers.CharField(required=False)
    tag = serializers.CharField(required=False)
    from_date = serializers.DateField(required=False)
    to_date = serializers.DateField(required=False)
    rating = serializers.IntegerField(required=False, min_value=1, max_value=5)

    def validate(self, attrs):
        start, end = attrs.get("from_date"), attrs.get("to_date")
        if start and end and start > end:
            raise serializers.ValidationError({"to_date": "to_date must be on or after from_date."})
        return attrs


class GoalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Goal
        fields = [
            'id', 'title', 'description', 'target_minutes', 'is_weekly',
            'start_date', 'end_date', 'is_recurring', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, attrs):
        start = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start and end and end < start:
            raise serializers.ValidationError({"end_date": "end_date must be on or after start_date."})
        return attrs


class TopTopicSerializer(serializers.Serializer):
    topic = serializers.CharField()
    minutes = serializers.IntegerField()
    sessions = serializers.IntegerField()


class DailyActivitySerializer(serializers.Serializer):
    date = serializers.DateField()
    minutes = serializers.IntegerField()


class DashboardSerializer(serializers.Serializer):
    total_sessions = serializers.IntegerField()
    total_minutes = serializers.IntegerField()
    streak = serializers.IntegerField()
    top_topics = TopTopicSerializer(many=True)
    daily_activity = DailyActivitySerializer(many=True)


class GoalProgressSerializer(serializers.Serializer):
    goal_id = serializers.IntegerField()
    title = serializers.CharField()
    target = serializers.IntegerField()
    actual = serializers.IntegerField()
    percentage = serializers.FloatField()
    is_weekly = serializers.BooleanField()
    period_start = serializers.DateField()
    period_end = serializers.DateField()
