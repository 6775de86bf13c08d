"""
Dashboard statistics over a user's study sessions.

Everything below the loaders is a pure function of the session records and
an explicit ``today``, so the date arithmetic can be tested without a clock.
"""
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, NamedTuple, Optional

from django.utils import timezone

from apps.learning.models import Goal, StudySession

TOP_TOPICS_LIMIT = 5
ACTIVITY_DAYS = 7


class SessionRecord(NamedTuple):
    day: date
    topic: str
    minutes: int


def compute_streak(days: Iterable[date], today: date) -> int:
    distinct = sorted(set(days), reverse=True)
    if not distinct:
        return 0

    most_recent = distinct[0]
    if most_recent > today or most_recent < today - timedelta(days=1):
        return 0

    streak = 1
    for newer, older in zip(distinct, distinct[1:]):
        if newer - older != timedelta(days=1):
            break
        streak += 1
    return streak


def top_topics(records: Iterable[SessionRecord], limit: int = TOP_TOPICS_LIMIT) -> list[dict]:
    minutes = defaultdict(int)
    counts = defaultdict(int)
    for r in records:
        minutes[r.topic] += r.minutes
        counts[r.topic] += 1
    ranked = sorted(minutes, key=lambda topic: (-minutes[topic], topic))
    return [
        {"topic": topic, "minutes": minutes[topic], "sessions": counts[topic]}
        for topic in ranked[:limit]
    ]


def daily_activity(records: Iterable[SessionRecord], today: date, days: int = ACTIVITY_DAYS) -> list[dict]:
    start = today - timedelta(days=days - 1)
    per_day = defaultdict(int)
    for r in records:
        if start <= r.day <= today:
            per_day[r.day] += r.minutes
    return [
        {"date": (start + timedelta(days=i)).isoformat(), "minutes": per_day[start + timedelta(days=i)]}
        for i in range(days)
    ]


def goal_window(is_weekly: bool, today: date) -> tuple[date, date]:
    """Half-open ``[start, end)``: Sunday-started week, or the current day."""
    if is_weekly:
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=7)
    return today, today + timedelta(days=1)


def goal_percentage(actual: int, target: int) -> float:
    if target <= 0:
        return 0.0
    return round(min(100.0, actual / target * 100), 2)


def goal_progress(goal, records: Iterable[SessionRecord], today: date) -> dict:
    start, end = goal_window(goal.is_weekly, today)
    actual = sum(r.minutes for r in records if start <= r.day < end)
    return {
        "goal_id": goal.id,
        "title": goal.title,
        "target": goal.target_minutes,
        "actual": actual,
        "percentage": goal_percentage(actual, goal.target_minutes),
        "is_weekly": goal.is_weekly,
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
    }


def build_dashboard(records: list[SessionRecord], today: date) -> dict:
    return {
        "total_sessions": len(records),
        "total_minutes": sum(r.minutes for r in records),
        "streak": compute_streak((r.day for r in records), today),
        "top_topics": top_topics(records),
        "daily_activity": daily_activity(records, today),
    }


# --- loaders -----------------------------------------------------------------

def load_records(user) -> list[SessionRecord]:
    rows = StudySession.objects.filter(user=user).values_list("date", "topic", "duration_minutes")
    return [SessionRecord(timezone.localtime(dt).date(), topic, minutes) for dt, topic, minutes in rows]


def dashboard_for(user, today: Optional[date] = None) -> dict:
    return build_dashboard(load_records(user), today or timezone.localdate())


def goals_progress_for(user, today: Optional[date] = None) -> list[dict]:
    today = today or timezone.localdate()
    records = load_records(user)
    return [goal_progress(goal, records, today) for goal in Goal.objects.filter(user=user)]


def progress_snapshot(user, today: Optional[date] = None) -> dict:
    """Compact summary stored alongside generated content."""
    today = today or timezone.localdate()
    records = load_records(user)
    return {
        "as_of": today.isoformat(),
        "total_sessions": len(records),
        "total_minutes": sum(r.minutes for r in records),
        "streak": compute_streak((r.day for r in records), today),
        "top_topics": top_topics(records),
    }
