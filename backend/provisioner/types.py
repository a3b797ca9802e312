from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


IMPORT_COMPLETED = "completed"
IMPORT_FAILED_STATES = {"deleted", "deleting"}


@dataclass(frozen=True)
class Tag:
    key: str
    value: str


@dataclass(frozen=True)
class ProvisionRequest:
    # ``image`` is either an ``ami-`` id or a logical image name.
    image: str
    vpc_id: str = ""
    subnet_id: str = ""
    security_group_id: str = ""
    tcp_ports: Tuple[int, ...] = ()
    udp_ports: Tuple[int, ...] = ()
    instance_type: str = ""
    tags: Tuple[Tag, ...] = ()
    domain_name: str = ""

    @property
    def reuses_security_group(self) -> bool:
        return bool(self.security_group_id and self.vpc_id)


@dataclass(frozen=True)
class Network:
    id: str
    is_default: bool = False

    @classmethod
    def from_ec2(cls, payload: Dict[str, Any]) -> "Network":
        return cls(id=payload.get("VpcId", ""), is_default=bool(payload.get("IsDefault")))


@dataclass(frozen=True)
class Subnet:
    id: str
    vpc_id: str
    default_for_az: bool = False

    @classmethod
    def from_ec2(cls, payload: Dict[str, Any]) -> "Subnet":
        return cls(
            id=payload.get("SubnetId", ""),
            vpc_id=payload.get("VpcId", ""),
            default_for_az=bool(payload.get("DefaultForAz")),
        )


@dataclass(frozen=True)
class IngressRule:
    protocol: str
    port: int
    cidr: str = "0.0.0.0/0"

    def to_ip_permission(self) -> Dict[str, Any]:
        return {
            "IpProtocol": self.protocol,
            "FromPort": self.port,
            "ToPort": self.port,
            "IpRanges": [{"CidrIp": self.cidr}],
        }


@dataclass(frozen=True)
class SecurityPolicy:
    id: str
    vpc_id: str
    ephemeral: bool = False
    name: str = ""
    rules: Tuple[IngressRule, ...] = ()


@dataclass(frozen=True)
class ImportTask:
    id: str
    status: str
    snapshot_id: Optional[str] = None
    status_message: str = ""

    @classmethod
    def from_ec2(cls, payload: Dict[str, Any]) -> "ImportTask":
        detail = payload.get("SnapshotTaskDetail") or {}
        status = str(detail.get("Status") or "")
        snapshot_id = detail.get("SnapshotId") if status == IMPORT_COMPLETED else None
        return cls(
            id=payload.get("ImportTaskId", ""),
            status=status,
            snapshot_id=snapshot_id,
            status_message=str(detail.get("StatusMessage") or ""),
        )

    @property
    def completed(self) -> bool:
        return self.status == IMPORT_COMPLETED

    @property
    def failed(self) -> bool:
        return self.status in IMPORT_FAILED_STATES


@dataclass
class MachineImage:
    id: str
    name: str
    snapshot_id: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    state: str = ""
    created: str = ""

    @property
    def logical_name(self) -> str:
        return self.tags.get("Name", "n/a")

    @classmethod
    def from_ec2(cls, payload: Dict[str, Any]) -> "MachineImage":
        snapshot_id = None
        for mapping in payload.get("BlockDeviceMappings") or []:
            ebs = mapping.get("Ebs") or {}
            if ebs.get("SnapshotId"):
                snapshot_id = ebs["SnapshotId"]
                break
        return cls(
            id=payload.get("ImageId", ""),
            name=payload.get("Name", ""),
            snapshot_id=snapshot_id,
            tags=tags_to_dict(payload.get("Tags")),
            state=payload.get("State", ""),
            created=payload.get("CreationDate", ""),
        )


@dataclass
class Instance:
    id: str
    name: str
    status: str
    private_ips: List[str] = field(default_factory=list)
    public_ips: List[str] = field(default_factory=list)
    created: str = ""

    @classmethod
    def from_ec2(cls, payload: Dict[str, Any]) -> "Instance":
        private_ips: List[str] = []
        public_ips: List[str] = []
        for interface in payload.get("NetworkInterfaces") or []:
            if interface.get("PrivateIpAddress"):
                private_ips.append(interface["PrivateIpAddress"])
            association = interface.get("Association") or {}
            if association.get("PublicIp"):
                public_ips.append(association["PublicIp"])
        launched = payload.get("LaunchTime")
        return cls(
            id=payload.get("InstanceId", ""),
            name=tags_to_dict(payload.get("Tags")).get("Name", "unknown"),
            status=(payload.get("State") or {}).get("Name", "unknown"),
            private_ips=private_ips,
            public_ips=public_ips,
            created=str(launched) if launched else "",
        )


def tags_to_dict(tags: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {str(tag.get("Key")): str(tag.get("Value") or "") for tag in tags or [] if tag.get("Key")}
