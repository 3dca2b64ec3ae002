from django.urls import path
from . import views

urlpatterns = [
    path('projects/', views.project_list_create, name='project-list-create'),
    path('projects/status/<str:status_value>/', views.project_by_status, name='project-by-status'),
    path('projects/search/', views.project_search, name='project-search'),
    path('projects/client/<str:client>/', views.project_by_client, name='project-by-client'),
    path('projects/user/<int:user_id>/', views.project_by_user, name='project-by-user'),
    path('projects/delayed/', views.project_delayed, name='project-delayed'),
    path('projects/attachments/<int:attachment_id>/', views.project_attachment_delete, name='project-attachment-delete'),
    path('projects/attachments/<int:attachment_id>/download/', views.project_attachment_download, name='project-attachment-download'),
    path('projects/<int:pk>/', views.project_detail, name='project-detail'),
    path('projects/<int:pk>/team/', views.project_team, name='project-team'),
    path('projects/<int:pk>/team/<int:user_id>/', views.project_team_member, name='project-team-member'),
    path('projects/<int:pk>/attachments/', views.project_attachments, name='project-attachments'),
]
