import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() == "true"

ALLOWED_HOSTS = [host.strip() for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if host.strip()]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "provisioner.apps.ProvisionerConfig",
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("CLOUDOPS_SQLITE_PATH", str(BASE_DIR / "cloudops.sqlite3")),
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        "provisioner": {
            "handlers": ["console"],
            "level": os.environ.get("PROVISIONER_LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
}

# Cloud provisioning. Polling values are (delay seconds, attempts).
PROVISIONER_REGION = (
    os.environ.get("PROVISIONER_REGION") or os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or ""
).strip()
PROVISIONER_BUCKET = os.environ.get("PROVISIONER_BUCKET", "").strip()
PROVISIONER_DEFAULT_INSTANCE_TYPE = os.environ.get("PROVISIONER_DEFAULT_INSTANCE_TYPE", "t2.micro").strip()
PROVISIONER_INGRESS_CIDR = os.environ.get("PROVISIONER_INGRESS_CIDR", "0.0.0.0/0").strip()
PROVISIONER_IMPORT_POLL_DELAY = float(os.environ.get("PROVISIONER_IMPORT_POLL_DELAY", "15"))
PROVISIONER_IMPORT_POLL_ATTEMPTS = int(os.environ.get("PROVISIONER_IMPORT_POLL_ATTEMPTS", "60"))
PROVISIONER_ADDRESS_POLL_DELAY = float(os.environ.get("PROVISIONER_ADDRESS_POLL_DELAY", "2"))
PROVISIONER_ADDRESS_POLL_ATTEMPTS = int(os.environ.get("PROVISIONER_ADDRESS_POLL_ATTEMPTS", "60"))
PROVISIONER_DNS_TTL = int(os.environ.get("PROVISIONER_DNS_TTL", "300"))
PROVISIONER_HOSTED_ZONE_ID = os.environ.get("PROVISIONER_HOSTED_ZONE_ID", "").strip()
PROVISIONER_IMAGE_ARCHITECTURE = os.environ.get("PROVISIONER_IMAGE_ARCHITECTURE", "x86_64").strip()
