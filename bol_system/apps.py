from django.apps import AppConfig


class BolSystemConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'bol_system'
    verbose_name = 'Transload BOL System'
