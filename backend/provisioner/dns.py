import logging
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from .errors import NotFoundError, classify_provider_error

logger = logging.getLogger(__name__)


def _fqdn(name: str) -> str:
    name = name.strip().lower()
    return name if name.endswith(".") else f"{name}."


def zone_candidates(domain_name: str) -> List[str]:
    # "api.dev.example.com" may live in "dev.example.com." or "example.com.";
    # nearest parent first. A bare "example.com" is its own zone.
    labels = _fqdn(domain_name).rstrip(".").split(".")
    if len(labels) <= 2:
        return [_fqdn(".".join(labels))]
    return [_fqdn(".".join(labels[start:])) for start in range(1, len(labels) - 1)]


class Route53DnsBinder:
    """Points an A record at an address. One change call, no propagation wait."""

    def __init__(self, route53, hosted_zone_id: str = "", ttl: int = 300):
        self.route53 = route53
        self.hosted_zone_id = hosted_zone_id
        self.ttl = ttl

    def find_zone_id(self, domain_name: str) -> str:
        candidates = zone_candidates(domain_name)
        for zone_name in candidates:
            try:
                resp = self.route53.list_hosted_zones_by_name(DNSName=zone_name, MaxItems="1")
            except (ClientError, BotoCoreError) as exc:
                raise classify_provider_error(exc, f"hosted zone lookup for {zone_name} failed") from exc
            for zone in resp.get("HostedZones", []):
                if zone.get("Name") == zone_name:
                    return zone["Id"]
        raise NotFoundError(f"no hosted zone found for {domain_name} (tried {', '.join(candidates)})")

    def bind(self, domain_name: str, address: str) -> str:
        zone_id = self.hosted_zone_id or self.find_zone_id(domain_name)
        record_name = _fqdn(domain_name)
        try:
            self.route53.change_resource_record_sets(
                HostedZoneId=zone_id,
                ChangeBatch={
                    "Comment": f"bind {record_name} to {address}",
                    "Changes": [
                        {
                            "Action": "UPSERT",
                            "ResourceRecordSet": {
                                "Name": record_name,
                                "Type": "A",
                                "TTL": self.ttl,
                                "ResourceRecords": [{"Value": address}],
                            },
                        }
                    ],
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"DNS record for {record_name} failed") from exc
        logger.info("Bound %s to %s in zone %s", record_name, address, zone_id)
        return record_name
