from django.urls import path
from . import views

urlpatterns = [
    path('material-requests/', views.material_request_list_create, name='material-request-list-create'),
    path('material-requests/pending/', views.material_request_pending, name='material-request-pending'),
    path('material-requests/approved/', views.material_request_approved, name='material-request-approved'),
    path('material-requests/rejected/', views.material_request_rejected, name='material-request-rejected'),
    path('material-requests/project/<int:project_id>/', views.material_request_by_project, name='material-request-by-project'),
    path('material-requests/<int:pk>/', views.material_request_detail, name='material-request-detail'),
    path('material-requests/<int:pk>/approve/', views.material_request_approve, name='material-request-approve'),
    path('material-requests/<int:pk>/reject/', views.material_request_reject, name='material-request-reject'),
]
