from django.urls import path
from . import views

urlpatterns = [
    path('auth/register/', views.register, name='register'),
    path('auth/login/', views.login, name='login'),
    path('auth/refresh/', views.SGPCTokenRefreshView.as_view(), name='token-refresh'),
    path('auth/me/', views.user_me, name='user-me'),
    path('auth/forgot-password/', views.forgot_password, name='forgot-password'),
    path('auth/reset-password/', views.reset_password, name='reset-password'),
    path('users/', views.user_list, name='user-list'),
    path('users/active/', views.user_active_list, name='user-active-list'),
    path('users/admin/create/', views.user_admin_create, name='user-admin-create'),
    path('users/<int:pk>/', views.user_detail, name='user-detail'),
    path('users/<int:pk>/activate/', views.user_activate, name='user-activate'),
    path('users/<int:pk>/deactivate/', views.user_deactivate, name='user-deactivate'),
    path('audit-logs/', views.audit_log_list, name='auditlog-list'),
    path('audit-logs/<int:pk>/', views.audit_log_detail, name='auditlog-detail'),
    path('audit-logs/entity/<str:model_name>/<str:object_id>/', views.audit_log_entity_history, name='auditlog-entity-history'),
    path('ping/', views.ping, name='ping'),
]
