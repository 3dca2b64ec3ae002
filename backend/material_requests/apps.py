from django.apps import AppConfig


class MaterialRequestsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.material_requests'
