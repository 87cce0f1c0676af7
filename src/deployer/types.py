"""Type definitions for deployer.

This module defines the core data types shared by the playbook runner, the
provisioning saga and the inventory. Everything that crosses a module
boundary is a dataclass; dictionaries only appear where a remote script
hands back free-form structured output.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .exceptions import DeployerError

DIGITALOCEAN = "digitalocean"
AWS = "aws"
PROVIDERS = (DIGITALOCEAN, AWS)

DEFAULT_PLAYBOOK_TIMEOUT = 300


@dataclass
class ServerTarget:
    """Identity and connection parameters for a remote server.

    Attributes:
        name: Unique inventory key (e.g., "web1")
        host: IP address or hostname
        port: SSH port (1-65535, default 22)
        username: SSH username
        private_key_path: Explicit private key; default keys are tried if None
        provider: Cloud provider tag ("digitalocean", "aws") or None
        provider_resource_id: Droplet or instance id for provisioned servers
        facts: Information gathered by a previous server-info run, or None
            when the server has not been inspected yet

    Example:
        >>> target = ServerTarget(name="web1", host="203.0.113.10")
        >>> target.port
        22
        >>> target.is_provisioned
        False
    """

    name: str
    host: str
    port: int = 22
    username: str = "root"
    private_key_path: str | None = None
    provider: str | None = None
    provider_resource_id: str | None = None
    facts: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Server name must not be empty")
        if not self.host:
            raise ValueError("Server host must not be empty")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"Invalid SSH port: {self.port!r}")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"SSH port must be between 1 and 65535, got {self.port}")
        if self.provider_resource_id and not self.provider:
            raise ValueError(
                f"Server '{self.name}' has a provider resource id but no provider"
            )

    @property
    def is_digitalocean(self) -> bool:
        """Check if this server was provisioned on DigitalOcean."""
        return self.provider == DIGITALOCEAN

    @property
    def is_aws(self) -> bool:
        """Check if this server was provisioned on AWS."""
        return self.provider == AWS

    @property
    def is_provisioned(self) -> bool:
        """Check if this server is backed by a cloud resource we created."""
        return self.provider_resource_id is not None

    @property
    def address(self) -> str:
        """Display form host:port."""
        return f"{self.host}:{self.port}"

    def with_facts(self, facts: dict[str, Any]) -> "ServerTarget":
        """Return a copy of this target carrying gathered facts."""
        return replace(self, facts=dict(facts))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk inventory representation.

        Facts are runtime state and are never written to the inventory.
        """
        data: dict[str, Any] = {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "username": self.username,
        }
        if self.private_key_path:
            data["privateKeyPath"] = self.private_key_path
        if self.provider:
            data["provider"] = self.provider
        if self.provider_resource_id is not None:
            key = "instanceId" if self.is_aws else "dropletId"
            data[key] = self.provider_resource_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerTarget":
        """Create a target from its inventory representation."""
        resource_id = data.get("dropletId", data.get("instanceId"))
        return cls(
            name=str(data.get("name", "")),
            host=str(data.get("host", "")),
            port=int(data.get("port", 22)),
            username=str(data.get("username", "root")),
            private_key_path=data.get("privateKeyPath"),
            provider=data.get("provider"),
            provider_resource_id=str(resource_id) if resource_id is not None else None,
        )


@dataclass
class CronJob:
    """A scheduled job belonging to a site."""

    script: str
    schedule: str

    def to_dict(self) -> dict[str, Any]:
        return {"script": self.script, "schedule": self.schedule}


@dataclass
class SupervisorProgram:
    """A long-running process supervised on behalf of a site."""

    program: str
    script: str
    autostart: bool = True
    autorestart: bool = True
    stopwaitsecs: int = 3600
    numprocs: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "program": self.program,
            "script": self.script,
            "autostart": self.autostart,
            "autorestart": self.autorestart,
            "stopwaitsecs": self.stopwaitsecs,
            "numprocs": self.numprocs,
        }


@dataclass
class SiteContext:
    """A site hosted on a server.

    Attributes:
        domain: Primary domain, unique across the inventory
        server: Name of the server hosting the site
        php_version: PHP version the site runs on
        repo: Optional git repository URL
        branch: Git branch to deploy
        crons: Scheduled jobs for the site
        supervisors: Supervised processes for the site
    """

    domain: str
    server: str
    php_version: str = "8.3"
    repo: str | None = None
    branch: str = "main"
    crons: list[CronJob] = field(default_factory=list)
    supervisors: list[SupervisorProgram] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk inventory representation."""
        data: dict[str, Any] = {
            "domain": self.domain,
            "server": self.server,
            "phpVersion": self.php_version,
            "branch": self.branch,
        }
        if self.repo:
            data["repo"] = self.repo
        if self.crons:
            data["crons"] = [cron.to_dict() for cron in self.crons]
        if self.supervisors:
            data["supervisors"] = [sup.to_dict() for sup in self.supervisors]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteContext":
        """Create a site from its inventory representation."""
        return cls(
            domain=str(data["domain"]),
            server=str(data["server"]),
            php_version=str(data.get("phpVersion", "8.3")),
            repo=data.get("repo"),
            branch=str(data.get("branch", "main")),
            crons=[CronJob(**cron) for cron in data.get("crons") or []],
            supervisors=[SupervisorProgram(**sup) for sup in data.get("supervisors") or []],
        )


class ExecutionMode(str, Enum):
    """How playbook output reaches the operator.

    STREAM relays output chunk by chunk as it arrives. CAPTURE buffers it
    silently and only shows it when the script fails.
    """

    STREAM = "stream"
    CAPTURE = "capture"


class RunPhase(str, Enum):
    """Phases a single playbook execution moves through."""

    PREPARED = "prepared"
    EXECUTING = "executing"
    EXIT_OK = "exit_ok"
    EXIT_FAILED = "exit_failed"
    TIMED_OUT = "timed_out"
    TRANSPORT_ERROR = "transport_error"
    READING_RESULT = "reading_result"
    PARSED = "parsed"
    MALFORMED_RESULT = "malformed_result"


@dataclass
class PlaybookRequest:
    """A single playbook invocation.

    Requests are built per call and never reused; each run gets its own
    output file.

    Attributes:
        playbook: Playbook name, resolved to a bundled script resource
        description: Status line shown while the playbook runs
        variables: Explicit variables; these override derived ones
        mode: STREAM or CAPTURE
        timeout: Seconds the script may run before TimedOut

    Example:
        >>> request = PlaybookRequest(
        ...     "server-firewall",
        ...     "Applying firewall rules",
        ...     variables={"DEPLOYER_MODE": "apply", "DEPLOYER_PORTS": [22, 80]},
        ... )
        >>> request.mode
        <ExecutionMode.CAPTURE: 'capture'>
    """

    playbook: str
    description: str = ""
    variables: dict[str, Any] = field(default_factory=dict)
    mode: ExecutionMode = ExecutionMode.CAPTURE
    timeout: float = DEFAULT_PLAYBOOK_TIMEOUT

    def __post_init__(self) -> None:
        if not self.description:
            self.description = f"Running {self.playbook}"


@dataclass
class PlaybookOutcome:
    """Result of a playbook execution.

    Either a successful structured result, or a classified failure carrying
    the raw output for diagnosis. A failed outcome never carries a result.

    Attributes:
        playbook: Playbook that was run
        host: Name of the target server
        success: Whether the playbook exited 0 and returned a valid result
        result: Structured result map (empty on failure)
        error: Classified failure, None on success
        output: Raw stdout and stderr captured from the remote script
        phase: Final execution phase reached
    """

    playbook: str
    host: str
    success: bool
    result: dict[str, Any] = field(default_factory=dict)
    error: DeployerError | None = None
    output: str = ""
    phase: RunPhase = RunPhase.PREPARED

    @classmethod
    def success_result(
        cls,
        playbook: str,
        host: str,
        result: dict[str, Any],
        output: str = "",
    ) -> "PlaybookOutcome":
        """Create a successful outcome."""
        return cls(
            playbook=playbook,
            host=host,
            success=True,
            result=result,
            output=output,
            phase=RunPhase.PARSED,
        )

    @classmethod
    def error_result(
        cls,
        playbook: str,
        host: str,
        error: DeployerError,
        phase: RunPhase,
        output: str = "",
    ) -> "PlaybookOutcome":
        """Create a failed outcome."""
        return cls(
            playbook=playbook,
            host=host,
            success=False,
            error=error,
            output=output,
            phase=phase,
        )

    def unwrap(self) -> dict[str, Any]:
        """Return the result map, or raise the classified error."""
        if not self.success:
            assert self.error is not None
            raise self.error
        return self.result
