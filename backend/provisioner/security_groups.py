import logging
from typing import Any, Dict, Iterable, List, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ProviderError,
    classify_provider_error,
    client_error_code,
)
from .polling import unique_suffix
from .types import IngressRule, Network, ProvisionRequest, SecurityPolicy

logger = logging.getLogger(__name__)

ANY_CIDR = "0.0.0.0/0"


def build_ingress_rules(
    tcp_ports: Iterable[int],
    udp_ports: Iterable[int],
    cidr: str = ANY_CIDR,
) -> Tuple[IngressRule, ...]:
    # Repeated ports collapse to one rule; first occurrence keeps its place.
    rules = [IngressRule("tcp", port, cidr) for port in dict.fromkeys(int(p) for p in tcp_ports)]
    rules.extend(IngressRule("udp", port, cidr) for port in dict.fromkeys(int(p) for p in udp_ports))
    return tuple(rules)


def _rules_from_permissions(permissions: List[Dict[str, Any]]) -> Tuple[IngressRule, ...]:
    rules: List[IngressRule] = []
    for permission in permissions or []:
        if "FromPort" not in permission:
            continue
        for ip_range in permission.get("IpRanges") or [{}]:
            rules.append(
                IngressRule(
                    protocol=str(permission.get("IpProtocol") or ""),
                    port=int(permission["FromPort"]),
                    cidr=str(ip_range.get("CidrIp") or ""),
                )
            )
    return tuple(rules)


class SecurityPolicyResolver:
    """Reuses a declared security group or creates one per provisioning run.

    Existing groups are re-read on every call; nothing is cached between
    requests.
    """

    def __init__(self, ec2, ingress_cidr: str = ANY_CIDR):
        self.ec2 = ec2
        self.ingress_cidr = ingress_cidr or ANY_CIDR

    def resolve_or_create(self, network: Network, request: ProvisionRequest, base_name: str = "") -> SecurityPolicy:
        if request.reuses_security_group:
            return self.validate_existing(request.security_group_id, request.vpc_id)
        rules = build_ingress_rules(request.tcp_ports, request.udp_ports, self.ingress_cidr)
        return self.create(network, base_name or request.image, rules)

    def validate_existing(self, group_id: str, vpc_id: str) -> SecurityPolicy:
        try:
            resp = self.ec2.describe_security_groups(GroupIds=[group_id])
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"get security group with id '{group_id}'") from exc
        groups = resp.get("SecurityGroups", [])
        if not groups:
            raise NotFoundError(f"security group '{group_id}' not found")
        group = groups[0]
        actual_vpc = group.get("VpcId", "")
        if actual_vpc != vpc_id:
            raise ConflictError(
                f"vpc mismatch: expected '{group_id}' to have vpc '{vpc_id}', got '{actual_vpc}'"
            )
        return SecurityPolicy(
            id=group.get("GroupId", group_id),
            vpc_id=actual_vpc,
            ephemeral=False,
            name=group.get("GroupName", ""),
            rules=_rules_from_permissions(group.get("IpPermissions", [])),
        )

    def create(self, network: Network, base_name: str, rules: Tuple[IngressRule, ...]) -> SecurityPolicy:
        name = f"{base_name}-{unique_suffix()}"
        try:
            resp = self.ec2.create_security_group(
                GroupName=name,
                Description=f"security group for {base_name}",
                VpcId=network.id,
            )
        except ClientError as exc:
            code = client_error_code(exc)
            if code == "InvalidVpcID.NotFound":
                raise NotFoundError(f"Unable to find VPC with ID {network.id!r}.", code=code) from exc
            if code == "InvalidGroup.Duplicate":
                raise AlreadyExistsError(f"Security group {name!r} already exists.", code=code) from exc
            raise ProviderError(f"Unable to create security group {name!r}: {exc}", code=code) from exc
        except BotoCoreError as exc:
            raise ProviderError(f"Unable to create security group {name!r}: {exc}") from exc
        group_id = resp["GroupId"]
        logger.info("Created security group %s with VPC %s.", group_id, network.id)

        if rules:
            try:
                self.ec2.authorize_security_group_ingress(
                    GroupId=group_id,
                    IpPermissions=[rule.to_ip_permission() for rule in rules],
                )
            except (ClientError, BotoCoreError) as exc:
                raise ProviderError(
                    f"Unable to set security group {name!r} ingress: {exc}",
                    code=client_error_code(exc) or None,
                ) from exc

        return SecurityPolicy(id=group_id, vpc_id=network.id, ephemeral=True, name=name, rules=rules)
