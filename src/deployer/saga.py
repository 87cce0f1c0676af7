"""Provisioning saga.

Creates a cloud server and registers it in the inventory:

    create -> await_ready -> get_address -> verify reachability -> register

Creating the resource is the only step that arms compensation. If any later
step fails, or the run is cancelled or interrupted, the resource is destroyed
and the original error is raised. A failed destroy is logged and never
replaces that error.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from .exceptions import DeployerError
from .facts import ServerInfo
from .providers.base import CloudProvider
from .retry import RetryConfig, RetryState, retry_with_backoff
from .runner import PlaybookRunner
from .types import PlaybookRequest, ServerTarget

logger = logging.getLogger(__name__)


class SagaState(str, Enum):
    """Lifecycle of one provisioning run."""

    REQUESTED = "requested"
    CREATED = "created"
    READY = "ready"
    REGISTERED = "registered"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SagaState.REGISTERED, SagaState.ROLLED_BACK, SagaState.FAILED)


class ServerRegistry(Protocol):
    """The part of the inventory the saga needs."""

    def create(self, target: ServerTarget) -> ServerTarget: ...


Verifier = Callable[[ServerTarget], Awaitable[ServerTarget]]


@dataclass
class ProvisionRequest:
    """What to provision and how to connect to it afterwards.

    Attributes:
        name: Inventory name for the new server
        spec: Provider-specific resource spec (DropletSpec, InstanceSpec)
        username: SSH user on the new server
        port: SSH port
        private_key_path: Key matching the one installed by the provider
    """

    name: str
    spec: Any
    username: str = "root"
    port: int = 22
    private_key_path: str | None = None


@dataclass
class SagaResult:
    """Summary of a finished saga, kept for reporting."""

    state: SagaState
    resource_id: str | None = None
    target: ServerTarget | None = None
    reachable: bool = False
    history: list[SagaState] = field(default_factory=list)


class ProvisioningSaga:
    """Provision a server with compensation on failure.

    Attributes:
        provider: Cloud provider that creates and destroys the resource
        registry: Inventory the new server is registered in
        retry_config: Backoff used while the new server boots
        state: Current saga state
        history: Every state entered, in order

    Example:
        saga = ProvisioningSaga(provider, ServerRepository(inventory), runner=runner)
        target = await saga.run(ProvisionRequest(
            name="web1",
            spec=DropletSpec(name="web1", region="nyc3", size="s-1vcpu-1gb",
                             image="ubuntu-24-04-x64", ssh_keys=[12345]),
        ))
    """

    def __init__(
        self,
        provider: CloudProvider,
        registry: ServerRegistry,
        runner: PlaybookRunner | None = None,
        verifier: Verifier | None = None,
        retry_config: RetryConfig | None = None,
        on_transition: Callable[[SagaState], None] | None = None,
    ) -> None:
        """Initialize the saga.

        Args:
            provider: Cloud provider client
            registry: Inventory (anything with create(target))
            runner: Runs server-info to verify reachability
            verifier: Replaces the server-info check entirely
            retry_config: Backoff for transient verification failures
            on_transition: Called with each new state
        """
        self.provider = provider
        self.registry = registry
        self.runner = runner or PlaybookRunner()
        self.verifier = verifier or self.gather_facts
        self.retry_config = retry_config or RetryConfig(max_attempts=3, initial_delay=5.0)
        self.on_transition = on_transition
        self.state = SagaState.REQUESTED
        self.history: list[SagaState] = [SagaState.REQUESTED]
        self.result = SagaResult(state=SagaState.REQUESTED)

    def _transition(self, state: SagaState) -> None:
        logger.debug(f"Saga state: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        self.result.state = state
        self.result.history = list(self.history)
        if self.on_transition is not None:
            self.on_transition(state)

    async def run(self, request: ProvisionRequest) -> ServerTarget:
        """Provision, verify and register a server.

        Args:
            request: What to create and how to reach it

        Returns:
            The registered ServerTarget, with facts if it was reachable

        Raises:
            Exception: The error from the step that failed. If the resource
                had been created it has been destroyed (best effort) first.
        """
        if self.state is not SagaState.REQUESTED:
            raise RuntimeError("A ProvisioningSaga can only run once")

        try:
            resource_id = await self.provider.create(request.spec)
        except BaseException:
            self._transition(SagaState.FAILED)
            raise

        self.result.resource_id = resource_id
        self._transition(SagaState.CREATED)

        try:
            await self.provider.await_ready(resource_id)
            self._transition(SagaState.READY)

            address = await self.provider.get_address(resource_id)
            target = ServerTarget(
                name=request.name,
                host=address,
                port=request.port,
                username=request.username,
                private_key_path=request.private_key_path,
                provider=self.provider.name,
                provider_resource_id=resource_id,
            )
            target = await self.verify_reachability(target)
            self.registry.create(target)
        except BaseException as e:
            # Cancellation and Ctrl-C roll back too
            logger.error(f"Provisioning {request.name} failed: {str(e) or type(e).__name__}")
            self._transition(SagaState.ROLLING_BACK)
            await self._compensate(resource_id)
            self._transition(SagaState.ROLLED_BACK)
            raise

        self.result.target = target
        self._transition(SagaState.REGISTERED)
        logger.info(f"Provisioned {target.name} at {target.host} ({self.provider.name} {resource_id})")
        return target

    async def verify_reachability(self, target: ServerTarget) -> ServerTarget:
        """Check that the new server answers over SSH.

        Transient failures (Unreachable, TimedOut) are retried with backoff.
        If they persist the server is still registered, without facts, and a
        warning is logged. Any other failure propagates.
        """
        retry_state = RetryState(host_name=target.name)
        try:
            verified, _ = await retry_with_backoff(
                lambda: self.verifier(target),
                self.retry_config,
                host_name=target.name,
                state=retry_state,
            )
        except DeployerError as e:
            if not e.transient:
                raise
            logger.warning(
                f"{target.name} ({target.host}) is not reachable ({retry_state.summary()}): "
                f"{e}. Registering it anyway; "
                f"run 'deployer server info --server {target.name}' once it has booted"
            )
            return target

        self.result.reachable = True
        return verified

    async def gather_facts(self, target: ServerTarget) -> ServerTarget:
        """Default verifier: run server-info and attach the facts."""
        result = await self.runner.run_or_raise(
            target, PlaybookRequest("server-info", "Retrieving server information")
        )
        return target.with_facts(ServerInfo.from_result(result).as_facts())

    async def _compensate(self, resource_id: str) -> None:
        try:
            await self.provider.destroy(resource_id)
        except Exception as e:
            logger.error(
                f"Rollback failed: could not destroy {self.provider.name} resource "
                f"{resource_id}: {e}. Destroy it manually."
            )
        else:
            logger.info(f"Rolled back: destroyed {self.provider.name} resource {resource_id}")
