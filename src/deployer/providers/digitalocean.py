"""DigitalOcean droplet provider.

Talks to the DigitalOcean v2 REST API with httpx.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..exceptions import ProviderError
from ..types import DIGITALOCEAN
from .base import DEFAULT_READY_TIMEOUT, CloudProvider, poll_until

logger = logging.getLogger(__name__)

API_URL = "https://api.digitalocean.com/v2"
POLL_INTERVAL = 2.0


@dataclass
class DropletSpec:
    """Parameters for a new droplet.

    Attributes:
        name: Droplet hostname
        region: Region slug (e.g., "nyc3")
        size: Size slug (e.g., "s-1vcpu-1gb")
        image: Image slug or id (e.g., "ubuntu-24-04-x64")
        ssh_keys: SSH key ids or fingerprints registered with DigitalOcean
        backups: Enable automated backups
        ipv6: Enable IPv6
        monitoring: Install the monitoring agent
        vpc_uuid: VPC to place the droplet in (default VPC if None)
    """

    name: str
    region: str
    size: str
    image: str
    ssh_keys: list[str | int] = field(default_factory=list)
    backups: bool = False
    ipv6: bool = False
    monitoring: bool = False
    vpc_uuid: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "region": self.region,
            "size": self.size,
            "image": self.image,
            "ssh_keys": self.ssh_keys,
            "backups": self.backups,
            "ipv6": self.ipv6,
            "monitoring": self.monitoring,
        }
        if self.vpc_uuid:
            payload["vpc_uuid"] = self.vpc_uuid
        return payload


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


class DigitalOceanProvider(CloudProvider):
    """Creates, inspects and destroys DigitalOcean droplets.

    Example:
        async with DigitalOceanProvider(token) as provider:
            droplet_id = await provider.create(DropletSpec(
                name="web1", region="nyc3", size="s-1vcpu-1gb",
                image="ubuntu-24-04-x64", ssh_keys=[12345],
            ))
            await provider.await_ready(droplet_id)
            ip = await provider.get_address(droplet_id)
    """

    name = DIGITALOCEAN

    def __init__(
        self,
        token: str,
        client: httpx.AsyncClient | None = None,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        """Initialize the provider.

        Args:
            token: DigitalOcean API token
            client: Preconfigured client (a new one is created if None)
            ready_timeout: Seconds to wait for a droplet to become active
            poll_interval: Seconds between status checks
        """
        if not token:
            raise ProviderError(
                "DigitalOcean API token is not set",
                suggestions=["Set DIGITALOCEAN_API_TOKEN in the environment"],
            )
        self.client = client or httpx.AsyncClient(
            base_url=API_URL,
            headers={"Authorization": f"Bearer {token}"},
            timeout=30.0,
        )
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(f"DigitalOcean API request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"DigitalOcean API request failed: {e}") from e
        return response

    def _check(self, response: httpx.Response, action: str) -> None:
        if response.is_error:
            raise ProviderError(
                f"DigitalOcean API error while trying to {action} "
                f"({response.status_code}): {_error_message(response)}"
            )

    async def create(self, spec: DropletSpec) -> str:
        response = await self._request("POST", "/droplets", json=spec.to_payload())
        self._check(response, f"create droplet {spec.name}")
        droplet_id = str(response.json()["droplet"]["id"])
        logger.info(f"Created droplet {spec.name} (id {droplet_id})")
        return droplet_id

    async def _droplet(self, droplet_id: str) -> dict[str, Any]:
        response = await self._request("GET", f"/droplets/{droplet_id}")
        self._check(response, f"fetch droplet {droplet_id}")
        return response.json()["droplet"]

    async def await_ready(self, droplet_id: str) -> None:
        async def is_active() -> bool:
            droplet = await self._droplet(droplet_id)
            status = droplet.get("status")
            logger.debug(f"Droplet {droplet_id} status: {status}")
            return status == "active"

        await poll_until(
            is_active,
            f"droplet {droplet_id} to become active",
            timeout=self.ready_timeout,
            interval=self.poll_interval,
        )

    async def get_address(self, droplet_id: str) -> str:
        droplet = await self._droplet(droplet_id)
        for network in droplet.get("networks", {}).get("v4", []):
            if network.get("type") == "public" and network.get("ip_address"):
                return str(network["ip_address"])
        raise ProviderError(f"Droplet {droplet_id} has no public IPv4 address")

    async def destroy(self, droplet_id: str) -> None:
        response = await self._request("DELETE", f"/droplets/{droplet_id}")
        if response.status_code == 404:
            logger.info(f"Droplet {droplet_id} already gone")
            return
        self._check(response, f"destroy droplet {droplet_id}")
        logger.info(f"Destroyed droplet {droplet_id}")

    async def aclose(self) -> None:
        await self.client.aclose()
