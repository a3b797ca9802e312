import base64
import binascii
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigurationError, NotFoundError, PollTimeoutError, ProviderError, classify_provider_error
from .polling import poll
from .types import Instance, ProvisionRequest, Tag

logger = logging.getLogger(__name__)


def build_tags(tags: Iterable[Tag], default_name: str) -> Tuple[List[Dict[str, str]], str]:
    """Return provider tags and the effective Name.

    A ``Name`` tag in ``tags`` wins; otherwise ``default_name`` is appended
    as the ``Name`` tag.
    """
    provider_tags: List[Dict[str, str]] = []
    name = default_name
    name_specified = False
    for tag in tags:
        provider_tags.append({"Key": tag.key, "Value": tag.value})
        if tag.key == "Name":
            name_specified = True
            name = tag.value
    if not name_specified:
        provider_tags.append({"Key": "Name", "Value": name})
    return provider_tags, name


class InstanceDirectory:
    """Direct instance operations: lookups and start/stop/terminate."""

    def __init__(self, ec2):
        self.ec2 = ec2

    def list_instances(self, filters: Optional[List[Dict[str, Any]]] = None) -> List[Instance]:
        params: Dict[str, Any] = {}
        if filters:
            params["Filters"] = filters
        try:
            resp = self.ec2.describe_instances(**params)
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, "describe instances failed") from exc
        instances: List[Instance] = []
        for reservation in resp.get("Reservations", []):
            for item in reservation.get("Instances", []):
                instances.append(Instance.from_ec2(item))
        return instances

    def get_instance(self, instance_id: str) -> Instance:
        try:
            resp = self.ec2.describe_instances(InstanceIds=[instance_id])
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"describe instance {instance_id} failed") from exc
        for reservation in resp.get("Reservations", []):
            for item in reservation.get("Instances", []):
                return Instance.from_ec2(item)
        raise NotFoundError(f"instance {instance_id} not found")

    def get_instance_by_name(self, name: str) -> Instance:
        instances = self.list_instances(
            [
                {"Name": "tag:Name", "Values": [name]},
                {"Name": "instance-state-name", "Values": ["pending", "running"]},
            ]
        )
        if not instances:
            raise NotFoundError(f"instance {name} not found")
        return instances[0]

    def start_instance(self, instance_id: str) -> str:
        try:
            resp = self.ec2.start_instances(InstanceIds=[instance_id])
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"start instance {instance_id} failed") from exc
        logger.info("Started instance %s", instance_id)
        return _current_state(resp.get("StartingInstances"))

    def stop_instance(self, instance_id: str) -> str:
        try:
            resp = self.ec2.stop_instances(InstanceIds=[instance_id])
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"stop instance {instance_id} failed") from exc
        logger.info("Stopped instance %s", instance_id)
        return _current_state(resp.get("StoppingInstances"))

    def terminate_instance(self, instance_id: str) -> str:
        try:
            resp = self.ec2.terminate_instances(InstanceIds=[instance_id])
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"terminate instance {instance_id} failed") from exc
        logger.info("Terminating instance %s", instance_id)
        return _current_state(resp.get("TerminatingInstances"))

    def get_console_output(self, instance_id: str) -> str:
        try:
            resp = self.ec2.get_console_output(InstanceId=instance_id)
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"console output for {instance_id} failed") from exc
        encoded = resp.get("Output") or ""
        try:
            return base64.b64decode(encoded).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as exc:
            raise ProviderError(f"console output for {instance_id} is not valid base64") from exc


def _current_state(changes: Optional[List[Dict[str, Any]]]) -> str:
    if not changes:
        return "unknown"
    return (changes[0].get("CurrentState") or {}).get("Name", "unknown")


class InstanceProvisioner:
    """Launches one instance and optionally binds its public address in DNS."""

    def __init__(
        self,
        ec2,
        *,
        networks,
        subnets,
        security,
        catalog,
        directory: InstanceDirectory,
        dns=None,
        default_instance_type: str = "t2.micro",
        poll_delay: float = 2,
        poll_attempts: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ec2 = ec2
        self.networks = networks
        self.subnets = subnets
        self.security = security
        self.catalog = catalog
        self.directory = directory
        self.dns = dns
        self.default_instance_type = default_instance_type
        self.poll_delay = poll_delay
        self.poll_attempts = poll_attempts
        self.sleep = sleep

    def provision(self, request: ProvisionRequest) -> Instance:
        if request.domain_name and self.dns is None:
            raise ConfigurationError(f"no DNS binder configured for {request.domain_name}")
        image_id = self.catalog.resolve_image_id(request.image)
        network = self.networks.resolve(request.vpc_id)
        policy = self.security.resolve_or_create(network, request, base_name=request.image)
        subnet = self.subnets.resolve(network, request.subnet_id)
        instance_type = request.instance_type or self.default_instance_type
        tags, name = build_tags(request.tags, f"{request.image}-{int(time.time())}")

        try:
            resp = self.ec2.run_instances(
                ImageId=image_id,
                InstanceType=instance_type,
                MinCount=1,
                MaxCount=1,
                SubnetId=subnet.id,
                SecurityGroupIds=[policy.id],
                TagSpecifications=[
                    {"ResourceType": "instance", "Tags": tags},
                    {"ResourceType": "volume", "Tags": tags},
                ],
            )
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, "Could not create instance") from exc
        launched = resp.get("Instances") or []
        if not launched or not launched[0].get("InstanceId"):
            raise ProviderError("EC2 did not return an InstanceId.")
        instance = Instance.from_ec2(launched[0])
        instance.name = name
        logger.info("Created instance %s (%s) in subnet %s", instance.id, name, subnet.id)

        if not request.domain_name:
            return instance
        return self.bind_domain(name, request.domain_name)

    def wait_for_public_address(self, name: str) -> Instance:
        def check(attempt: int) -> Optional[Instance]:
            try:
                instance = self.directory.get_instance_by_name(name)
            except (NotFoundError, ProviderError) as exc:
                logger.warning("Lookup of %s failed on attempt %s: %s", name, attempt, exc)
                return None
            if instance.public_ips:
                return instance
            return None

        return poll(
            check,
            delay=self.poll_delay,
            attempts=self.poll_attempts,
            description=f"public address for instance {name}",
            sleep=self.sleep,
        )

    def bind_domain(self, name: str, domain_name: str) -> Instance:
        try:
            instance = self.wait_for_public_address(name)
        except PollTimeoutError:
            logger.warning("Instance %s has no public address yet; it is left running", name)
            raise
        self.dns.bind(domain_name, instance.public_ips[0])
        return instance
