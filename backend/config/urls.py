"""
URL configuration for the SGPC backend.

Every app mounts its routes under api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "SGPC Administration"
admin.site.site_title = "SGPC Admin Portal"
admin.site.index_title = "Construction Project Management"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.projects.urls')),
    path('api/v1/', include('backend.tasks.urls')),
    path('api/v1/', include('backend.costs.urls')),
    path('api/v1/', include('backend.materials.urls')),
    path('api/v1/', include('backend.material_requests.urls')),
    path('api/v1/', include('backend.reports.urls')),
]
