import logging
from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from .errors import NotFoundError, classify_provider_error
from .types import Network, Subnet

logger = logging.getLogger(__name__)


class NetworkResolver:
    def __init__(self, ec2):
        self.ec2 = ec2

    def resolve(self, vpc_id: str = "") -> Network:
        params: Dict[str, Any] = {}
        if vpc_id:
            params["Filters"] = [{"Name": "vpc-id", "Values": [vpc_id]}]
        try:
            resp = self.ec2.describe_vpcs(**params)
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, "Unable to describe VPCs") from exc
        vpcs = [Network.from_ec2(item) for item in resp.get("Vpcs", [])]
        if not vpcs and vpc_id:
            raise NotFoundError(f"No VPCs with id '{vpc_id}' found to associate security group with")
        if not vpcs:
            raise NotFoundError("No VPCs found to associate security group with")
        if vpc_id:
            return vpcs[0]
        for vpc in vpcs:
            if vpc.is_default:
                return vpc
        logger.info("No default VPC flagged; using %s", vpcs[0].id)
        return vpcs[0]


class SubnetResolver:
    def __init__(self, ec2):
        self.ec2 = ec2

    def resolve(self, network: Network, subnet_id: str = "") -> Subnet:
        filters: List[Dict[str, Any]] = [{"Name": "vpc-id", "Values": [network.id]}]
        if subnet_id:
            filters.append({"Name": "subnet-id", "Values": [subnet_id]})
        try:
            resp = self.ec2.describe_subnets(Filters=filters)
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, "Unable to describe subnets") from exc
        subnets = [Subnet.from_ec2(item) for item in resp.get("Subnets", [])]
        if not subnets and subnet_id:
            raise NotFoundError(f"No subnets with id '{subnet_id}' found in VPC {network.id}")
        if not subnets:
            raise NotFoundError(f"No subnets found in VPC {network.id}")
        for subnet in subnets:
            if subnet.default_for_az:
                return subnet
        return subnets[0]
