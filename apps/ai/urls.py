from django.urls import path
from .views import (
    DailyContentView,
    DailyExercisesView,
    LearningPlanDeleteView,
    LearningPlanListView,
    PlanStructureCreateView,
    PlanStructureDetailView,
    ValidateGoalView,
    WeeklyContentCreateView,
    WeeklyContentDetailView,
)

urlpatterns = [
    path('learnings', LearningPlanListView.as_view(), name='learning_plan_list'),
    path('learnings/structure', PlanStructureCreateView.as_view(), name='plan_structure_create'),
    path('learnings/structure/<int:pk>', PlanStructureDetailView.as_view(), name='plan_structure_detail'),
    path('learnings/weekly-content', WeeklyContentCreateView.as_view(), name='weekly_content_create'),
    path('learnings/weekly-content/<int:week>/<int:plan_id>', WeeklyContentDetailView.as_view(), name='weekly_content_detail'),
    path('learnings/daily-content/<int:day>/<int:week>/<int:plan_id>', DailyContentView.as_view(), name='daily_content'),
    path('learnings/daily-content/<int:day>/<int:week>/<int:plan_id>/exercises', DailyExercisesView.as_view(), name='daily_exercises'),
    path('learnings/plan/<int:pk>', LearningPlanDeleteView.as_view(), name='learning_plan_delete'),
    path('learnings/validate-goal', ValidateGoalView.as_view(), name='validate_goal'),
]
