from django.urls import path
from . import views

urlpatterns = [
    path('cost/services/', views.service_list_create, name='service-list-create'),
    path('cost/services/search/', views.service_search, name='service-search'),
    path('cost/tasks/<int:task_id>/services/', views.task_services, name='task-services'),
    path('cost/tasks/<int:task_id>/services/<int:service_id>/', views.task_service_delete, name='task-service-delete'),
    path('cost/tasks/<int:task_id>/progress/', views.task_progress, name='task-progress'),
    path('cost/tasks/<int:task_id>/report/', views.task_cost_report, name='task-cost-report'),
    path('cost/tasks/<int:task_id>/recalculate/', views.task_recalculate, name='task-recalculate'),
    path('cost/projects/budget-report/', views.project_budget_report, name='project-budget-report'),
    path('cost/projects/over-budget/', views.project_over_budget, name='project-over-budget'),
    path('cost/projects/<int:project_id>/budget/', views.project_budget_detail, name='project-budget'),
    path('cost/projects/<int:project_id>/recalculate-cost/', views.project_recalculate_cost, name='project-recalculate-cost'),
    path('cost/projects/<int:project_id>/recalculate-progress/', views.project_recalculate_progress, name='project-recalculate-progress'),
]
