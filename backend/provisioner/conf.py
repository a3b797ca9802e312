from dataclasses import dataclass, replace
from typing import Optional

from django.conf import settings

from .errors import ConfigurationError


@dataclass(frozen=True)
class ProvisionerConfig:
    region: str
    bucket: str = ""
    default_instance_type: str = "t2.micro"
    ingress_cidr: str = "0.0.0.0/0"
    import_poll_delay: float = 15
    import_poll_attempts: int = 60
    address_poll_delay: float = 2
    address_poll_attempts: int = 60
    dns_ttl: int = 300
    hosted_zone_id: str = ""
    image_architecture: str = "x86_64"

    @classmethod
    def from_settings(cls, region: Optional[str] = None) -> "ProvisionerConfig":
        region = (region or getattr(settings, "PROVISIONER_REGION", "") or "").strip()
        if not region:
            raise ConfigurationError("AWS region required (PROVISIONER_REGION or AWS_REGION)")
        return cls(
            region=region,
            bucket=getattr(settings, "PROVISIONER_BUCKET", ""),
            default_instance_type=getattr(settings, "PROVISIONER_DEFAULT_INSTANCE_TYPE", "t2.micro") or "t2.micro",
            ingress_cidr=getattr(settings, "PROVISIONER_INGRESS_CIDR", "0.0.0.0/0") or "0.0.0.0/0",
            import_poll_delay=getattr(settings, "PROVISIONER_IMPORT_POLL_DELAY", 15),
            import_poll_attempts=getattr(settings, "PROVISIONER_IMPORT_POLL_ATTEMPTS", 60),
            address_poll_delay=getattr(settings, "PROVISIONER_ADDRESS_POLL_DELAY", 2),
            address_poll_attempts=getattr(settings, "PROVISIONER_ADDRESS_POLL_ATTEMPTS", 60),
            dns_ttl=getattr(settings, "PROVISIONER_DNS_TTL", 300),
            hosted_zone_id=getattr(settings, "PROVISIONER_HOSTED_ZONE_ID", ""),
            image_architecture=getattr(settings, "PROVISIONER_IMAGE_ARCHITECTURE", "x86_64") or "x86_64",
        )

    def with_bucket(self, bucket: str) -> "ProvisionerConfig":
        return replace(self, bucket=bucket)
