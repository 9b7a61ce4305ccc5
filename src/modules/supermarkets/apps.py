from django.apps import AppConfig


class SupermarketsConfig(AppConfig):
    name = "modules.supermarkets"
    label = "supermarkets"
