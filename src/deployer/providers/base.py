"""Cloud provider contract.

The provisioning saga needs exactly four operations from a provider:
create a resource, wait for it to run, look up its public address, and
destroy it. Provider-specific details stay inside the spec objects passed
to create().
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from ..exceptions import ProviderTimeout

logger = logging.getLogger(__name__)

DEFAULT_READY_TIMEOUT = 300.0


class CloudProvider(ABC):
    """A cloud API that can create and destroy servers.

    Attributes:
        name: Provider tag stored on provisioned servers ("digitalocean", "aws")
    """

    name: str = ""

    @abstractmethod
    async def create(self, spec: Any) -> str:
        """Create a resource and return its id."""

    @abstractmethod
    async def await_ready(self, resource_id: str) -> None:
        """Block until the resource is running.

        Raises:
            ProviderTimeout: If it does not become ready in time
            ProviderError: If it enters a failed state
        """

    @abstractmethod
    async def get_address(self, resource_id: str) -> str:
        """Return the public IPv4 address of a running resource."""

    @abstractmethod
    async def destroy(self, resource_id: str) -> None:
        """Destroy a resource. A resource that no longer exists is not an error."""

    async def aclose(self) -> None:
        """Release any API client held by the provider."""

    async def __aenter__(self) -> "CloudProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    description: str,
    timeout: float,
    interval: float,
) -> None:
    """Call check until it returns True or the timeout passes.

    Args:
        check: Coroutine function returning True once the condition holds
        description: What is being waited for, used in messages
        timeout: Total seconds to wait
        interval: Seconds between checks

    Raises:
        ProviderTimeout: If the timeout passes first
    """
    deadline = time.monotonic() + timeout
    attempts = 0
    while True:
        attempts += 1
        if await check():
            logger.debug(f"{description}: ready after {attempts} check(s)")
            return
        if time.monotonic() >= deadline:
            raise ProviderTimeout(
                f"Timed out after {timeout:g}s waiting for {description}",
                suggestions=[
                    "The provider may be slow to boot instances right now",
                    "Check the provider console for the resource state",
                ],
            )
        await asyncio.sleep(interval)
