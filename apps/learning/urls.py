from django.urls import path
from .views import (
    DashboardView,
    GoalDetailView,
    GoalListCreateView,
    GoalProgressView,
    SessionDetailView,
    SessionListCreateView,
    SessionTagsView,
)


urlpatterns = [
    path('sessions', SessionListCreateView.as_view(), name='session_list_create'),
    path('sessions/tags', SessionTagsView.as_view(), name='session_tags'),
    path('sessions/<int:pk>', SessionDetailView.as_view(), name='session_detail'),
    path('goals', GoalListCreateView.as_view(), name='goal_list_create'),
    path('goals/progress', GoalProgressView.as_view(), name='goal_progress'),
    path('goals/<int:pk>', GoalDetailView.as_view(), name='goal_detail'),
    path('stats/dashboard', DashboardView.as_view(), name='dashboard'),
]
