from django.urls import path
from . import views

urlpatterns = [
    path('materials/', views.material_list_create, name='material-list-create'),
    path('materials/search/', views.material_search, name='material-search'),
    path('materials/supplier/<str:supplier>/', views.material_by_supplier, name='material-by-supplier'),
    path('materials/low-stock/', views.material_low_stock, name='material-low-stock'),
    path('materials/<int:pk>/', views.material_detail, name='material-detail'),
    path('materials/<int:pk>/stock/', views.material_stock_movement, name='material-stock-movement'),
    path('materials/<int:pk>/stock/add/', views.material_stock_add, name='material-stock-add'),
    path('materials/<int:pk>/stock/remove/', views.material_stock_remove, name='material-stock-remove'),
    path('materials/<int:pk>/movements/', views.material_movements, name='material-movements'),
]
