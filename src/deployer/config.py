"""Runtime configuration for deployer.

Settings come from environment variables, with defaults suitable for a
workstation. The CLI overrides individual values from its options.
"""

import os
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from .inventory import DEFAULT_INVENTORY_FILE
from .runner import READ_BACK_TIMEOUT
from .ssh import DEFAULT_CONNECT_TIMEOUT
from .types import DEFAULT_PLAYBOOK_TIMEOUT


def _first(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass
class DeployerConfig:
    """Deployer settings.

    Attributes:
        inventory_path: YAML inventory file
        playbook_timeout: Default timeout for a playbook run, in seconds
        read_timeout: Timeout for reading a playbook's result back
        connect_timeout: Bounded wait for SSH connections
        playbook_dir: Directory overriding the bundled playbooks
        digitalocean_token: DigitalOcean API token
        aws_region: AWS region for EC2
        aws_profile: Named AWS profile
    """

    inventory_path: str = DEFAULT_INVENTORY_FILE
    playbook_timeout: float = DEFAULT_PLAYBOOK_TIMEOUT
    read_timeout: float = READ_BACK_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    playbook_dir: str | None = None
    digitalocean_token: str | None = None
    aws_region: str = "us-east-1"
    aws_profile: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "DeployerConfig":
        """Build a configuration from environment variables.

        Raises:
            ValueError: If a timeout variable is not a positive number
        """
        env = os.environ if env is None else env
        return cls(
            inventory_path=env.get("DEPLOYER_INVENTORY") or DEFAULT_INVENTORY_FILE,
            playbook_timeout=_float(env, "DEPLOYER_PLAYBOOK_TIMEOUT", DEFAULT_PLAYBOOK_TIMEOUT),
            read_timeout=_float(env, "DEPLOYER_READ_TIMEOUT", READ_BACK_TIMEOUT),
            connect_timeout=_float(env, "DEPLOYER_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT),
            playbook_dir=env.get("DEPLOYER_PLAYBOOK_DIR") or None,
            digitalocean_token=_first(env, "DIGITALOCEAN_API_TOKEN", "DO_API_TOKEN"),
            aws_region=_first(env, "AWS_REGION", "AWS_DEFAULT_REGION") or "us-east-1",
            aws_profile=env.get("AWS_PROFILE") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, masking the API token."""
        data = asdict(self)
        if data["digitalocean_token"]:
            data["digitalocean_token"] = "********"
        return data

    def format_text(self) -> str:
        """Format as human-readable text."""
        lines = ["Configuration:"]
        for key, value in self.to_dict().items():
            lines.append(f"  {key}: {value if value is not None else '(not set)'}")
        return "\n".join(lines)
