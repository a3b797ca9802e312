from django.apps import AppConfig


class ProvisionerConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "provisioner"
    label = "provisioner"
    verbose_name = "Cloud provisioner"
