from django.apps import AppConfig


class PettyCashConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'joyeria.pettycash'
