"""AWS EC2 instance provider.

Async EC2 instance management using aioboto3. Credentials come from the
usual AWS chain (environment, shared config, instance profile).
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import ProviderError
from ..types import AWS
from .base import DEFAULT_READY_TIMEOUT, CloudProvider, poll_until

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5.0
FAILED_STATES = ("terminated", "shutting-down", "stopping", "stopped")
NOT_FOUND_CODES = ("InvalidInstanceID.NotFound", "InvalidInstanceID.Malformed")


@dataclass
class InstanceSpec:
    """Parameters for a new EC2 instance.

    Attributes:
        name: Value of the Name tag
        image_id: AMI id
        instance_type: Instance type (e.g., "t3.small")
        key_name: EC2 key pair installed on the instance
        subnet_id: Subnet to launch into (default VPC if None)
        security_group_ids: Security groups to attach
        volume_size: Root volume size in GiB (AMI default if None)
    """

    name: str
    image_id: str
    instance_type: str
    key_name: str
    subnet_id: str | None = None
    security_group_ids: list[str] = field(default_factory=list)
    volume_size: int | None = None

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "ImageId": self.image_id,
            "InstanceType": self.instance_type,
            "KeyName": self.key_name,
            "MinCount": 1,
            "MaxCount": 1,
            "TagSpecifications": [
                {
                    "ResourceType": "instance",
                    "Tags": [{"Key": "Name", "Value": self.name}],
                }
            ],
        }
        if self.subnet_id:
            params["SubnetId"] = self.subnet_id
        if self.security_group_ids:
            params["SecurityGroupIds"] = self.security_group_ids
        if self.volume_size:
            params["BlockDeviceMappings"] = [
                {"DeviceName": "/dev/sda1", "Ebs": {"VolumeSize": self.volume_size}}
            ]
        return params


def default_username(image_name: str) -> str:
    """SSH user baked into an AMI, derived from its name."""
    return "admin" if "debian" in image_name.lower() else "ubuntu"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class AwsProvider(CloudProvider):
    """Creates, inspects and terminates EC2 instances.

    Example:
        provider = AwsProvider(region="us-east-1")
        instance_id = await provider.create(InstanceSpec(
            name="web1", image_id="ami-0abc", instance_type="t3.small",
            key_name="deployer",
        ))
        await provider.await_ready(instance_id)
    """

    name = AWS

    def __init__(
        self,
        region: str = "us-east-1",
        profile: str | None = None,
        session: Any = None,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        """Initialize the provider.

        Args:
            region: AWS region
            profile: Named profile from the shared AWS config
            session: Preconfigured aioboto3 session (created if None)
            ready_timeout: Seconds to wait for the instance to run
            poll_interval: Seconds between state checks
        """
        self.region = region
        self.session = session or aioboto3.Session(profile_name=profile, region_name=region)
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        try:
            async with self.session.client("ec2", region_name=self.region) as ec2:
                return await getattr(ec2, operation)(**params)
        except ClientError as e:
            raise ProviderError(f"AWS {operation} failed: {e}") from e
        except BotoCoreError as e:
            raise ProviderError(f"AWS request failed: {e}") from e

    async def create(self, spec: InstanceSpec) -> str:
        response = await self._call("run_instances", **spec.to_params())
        instance_id = str(response["Instances"][0]["InstanceId"])
        logger.info(f"Launched instance {spec.name} ({instance_id})")
        return instance_id

    async def _instance(self, instance_id: str) -> dict[str, Any]:
        response = await self._call("describe_instances", InstanceIds=[instance_id])
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return instance
        raise ProviderError(f"Instance {instance_id} not found")

    async def await_ready(self, instance_id: str) -> None:
        async def is_running() -> bool:
            instance = await self._instance(instance_id)
            state = instance.get("State", {}).get("Name")
            logger.debug(f"Instance {instance_id} state: {state}")
            if state in FAILED_STATES:
                raise ProviderError(f"Instance {instance_id} entered state '{state}'")
            return state == "running"

        await poll_until(
            is_running,
            f"instance {instance_id} to start running",
            timeout=self.ready_timeout,
            interval=self.poll_interval,
        )

    async def get_address(self, instance_id: str) -> str:
        instance = await self._instance(instance_id)
        address = instance.get("PublicIpAddress")
        if not address:
            raise ProviderError(
                f"Instance {instance_id} has no public IP address",
                suggestions=["Launch into a subnet that assigns public IPv4 addresses"],
            )
        return str(address)

    async def image_username(self, image_id: str) -> str:
        """Look up the default SSH user for an AMI."""
        response = await self._call("describe_images", ImageIds=[image_id])
        images = response.get("Images", [])
        return default_username(images[0].get("Name", "") if images else "")

    async def destroy(self, instance_id: str) -> None:
        try:
            async with self.session.client("ec2", region_name=self.region) as ec2:
                await ec2.terminate_instances(InstanceIds=[instance_id])
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                logger.info(f"Instance {instance_id} already gone")
                return
            raise ProviderError(f"AWS terminate_instances failed: {e}") from e
        except BotoCoreError as e:
            raise ProviderError(f"AWS request failed: {e}") from e
        logger.info(f"Terminated instance {instance_id}")
