import time
from typing import Callable, List, Optional

import boto3

from .conf import ProvisionerConfig
from .dns import Route53DnsBinder
from .images import ImageCatalog, ImageImportOrchestrator
from .instances import InstanceDirectory, InstanceProvisioner
from .networks import NetworkResolver, SubnetResolver
from .security_groups import SecurityPolicyResolver
from .storage import S3StagingStorage
from .types import Instance, MachineImage, Network, ProvisionRequest, SecurityPolicy


def _ec2(region: str):
    return boto3.client("ec2", region_name=region)


def _s3(region: str):
    return boto3.client("s3", region_name=region)


def _route53():
    return boto3.client("route53")


class AwsProvider:
    """Provisioning entry points for one region.

    Clients are created once per provider and shared by its components;
    separate providers never share a client.
    """

    def __init__(
        self,
        config: ProvisionerConfig,
        *,
        ec2=None,
        s3=None,
        route53=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.ec2 = ec2 or _ec2(config.region)
        self.s3 = s3 or _s3(config.region)
        self.route53 = route53 or _route53()

        self.storage = S3StagingStorage(self.s3, config.bucket)
        self.networks = NetworkResolver(self.ec2)
        self.subnets = SubnetResolver(self.ec2)
        self.security = SecurityPolicyResolver(self.ec2, ingress_cidr=config.ingress_cidr)
        self.catalog = ImageCatalog(self.ec2)
        self.directory = InstanceDirectory(self.ec2)
        self.dns = Route53DnsBinder(self.route53, hosted_zone_id=config.hosted_zone_id, ttl=config.dns_ttl)
        self.importer = ImageImportOrchestrator(
            self.ec2,
            self.storage,
            poll_delay=config.import_poll_delay,
            poll_attempts=config.import_poll_attempts,
            architecture=config.image_architecture,
            sleep=sleep,
        )
        self.provisioner = InstanceProvisioner(
            self.ec2,
            networks=self.networks,
            subnets=self.subnets,
            security=self.security,
            catalog=self.catalog,
            directory=self.directory,
            dns=self.dns,
            default_instance_type=config.default_instance_type,
            poll_delay=config.address_poll_delay,
            poll_attempts=config.address_poll_attempts,
            sleep=sleep,
        )

    # Network and security resolution.
    def resolve_network(self, vpc_id: str = "") -> Network:
        return self.networks.resolve(vpc_id)

    def resolve_security_policy(self, network: Network, request: ProvisionRequest) -> SecurityPolicy:
        return self.security.resolve_or_create(network, request, base_name=request.image)

    # Images.
    def import_and_register(self, staged_key: str, image_name: str) -> MachineImage:
        return self.importer.import_and_register(staged_key, image_name)

    def stage_and_import(self, path: str, image_name: str) -> MachineImage:
        return self.importer.stage_and_import(path, image_name)

    def list_images(self) -> List[MachineImage]:
        return self.catalog.list_images()

    def delete_image(self, registered_name: str) -> MachineImage:
        return self.catalog.delete_image(registered_name)

    def resize_image(self, image_name: str, size: str) -> None:
        return self.catalog.resize_image(image_name, size)

    # Instances.
    def provision(self, request: ProvisionRequest) -> Instance:
        return self.provisioner.provision(request)

    def list_instances(self) -> List[Instance]:
        return self.directory.list_instances()

    def get_instance(self, instance_id: str) -> Instance:
        return self.directory.get_instance(instance_id)

    def get_instance_by_name(self, name: str) -> Instance:
        return self.directory.get_instance_by_name(name)

    def start_instance(self, instance_id: str) -> str:
        return self.directory.start_instance(instance_id)

    def stop_instance(self, instance_id: str) -> str:
        return self.directory.stop_instance(instance_id)

    def terminate_instance(self, instance_id: str) -> str:
        return self.directory.terminate_instance(instance_id)

    def get_console_output(self, instance_id: str) -> str:
        return self.directory.get_console_output(instance_id)


def build_provider(region: Optional[str] = None, bucket: Optional[str] = None) -> AwsProvider:
    config = ProvisionerConfig.from_settings(region)
    if bucket:
        config = config.with_bucket(bucket)
    return AwsProvider(config)
