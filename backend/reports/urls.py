from django.urls import path
from . import views

urlpatterns = [
    path('dashboard/', views.dashboard, name='dashboard'),
    path('reports/projects/', views.project_report, name='project-report'),
    path('reports/projects/<int:project_id>/', views.project_report, name='project-report-detail'),
    path('reports/costs/', views.cost_report, name='cost-report'),
    path('reports/costs/<int:project_id>/', views.cost_report, name='cost-report-detail'),
    path('reports/stock/', views.stock_report, name='stock-report'),
    path('reports/stock/<int:material_id>/', views.stock_report, name='stock-report-detail'),
    path('reports/summary/', views.summary_report, name='summary-report'),
]
