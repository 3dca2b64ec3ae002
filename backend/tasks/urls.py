from django.urls import path
from . import views

urlpatterns = [
    path('projects/<int:project_id>/tasks/', views.task_list_create, name='task-list-create'),
    path('projects/<int:project_id>/tasks/kanban/', views.task_kanban, name='task-kanban'),
    path('projects/<int:project_id>/tasks/overdue/', views.task_overdue, name='task-overdue'),
    path('projects/<int:project_id>/tasks/statistics/', views.task_statistics, name='task-statistics'),
    path('projects/<int:project_id>/tasks/status/<str:status_value>/', views.task_by_status, name='task-by-status'),
    path('projects/<int:project_id>/tasks/assigned/<int:user_id>/', views.task_assigned, name='task-assigned'),
    path('projects/<int:project_id>/tasks/attachments/<int:attachment_id>/', views.task_attachment_delete, name='task-attachment-delete'),
    path('projects/<int:project_id>/tasks/attachments/<int:attachment_id>/download/', views.task_attachment_download, name='task-attachment-download'),
    path('projects/<int:project_id>/tasks/<int:task_id>/', views.task_detail, name='task-detail'),
    path('projects/<int:project_id>/tasks/<int:task_id>/status/', views.task_update_status, name='task-update-status'),
    path('projects/<int:project_id>/tasks/<int:task_id>/attachments/', views.task_attachments, name='task-attachments'),
]
