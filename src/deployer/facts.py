"""Typed views over playbook results.

Playbooks return loosely shaped YAML. Each caller that consumes a result
decodes it here into a dataclass with explicit defaults, so a missing key
never turns into a KeyError deep inside a command.

Port detection in the bundled playbooks covers TCP listeners only
(`ss -tlnp`), and the firewall playbook only writes TCP rules.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DistributionFamily(str, Enum):
    """Package-manager family of a distribution."""

    DEBIAN = "debian"
    REDHAT = "redhat"
    FEDORA = "fedora"
    AMAZON = "amazon"


class Distribution(str, Enum):
    """Linux distributions recognized by server-info."""

    UBUNTU = "ubuntu"
    DEBIAN = "debian"
    FEDORA = "fedora"
    CENTOS = "centos"
    ROCKY = "rocky"
    ALMA = "alma"
    RHEL = "rhel"
    AMAZON = "amazon"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def family(self) -> DistributionFamily:
        return _FAMILIES[self]

    @property
    def is_supported(self) -> bool:
        """Bundled playbooks use apt, so only the Debian family is supported."""
        return self.family is DistributionFamily.DEBIAN

    @classmethod
    def supported(cls) -> list["Distribution"]:
        return [dist for dist in cls if dist.is_supported]


_DISPLAY_NAMES = {
    Distribution.UBUNTU: "Ubuntu",
    Distribution.DEBIAN: "Debian",
    Distribution.FEDORA: "Fedora",
    Distribution.CENTOS: "CentOS",
    Distribution.ROCKY: "Rocky Linux",
    Distribution.ALMA: "AlmaLinux",
    Distribution.RHEL: "Red Hat Enterprise Linux",
    Distribution.AMAZON: "Amazon Linux",
}

_FAMILIES = {
    Distribution.UBUNTU: DistributionFamily.DEBIAN,
    Distribution.DEBIAN: DistributionFamily.DEBIAN,
    Distribution.FEDORA: DistributionFamily.FEDORA,
    Distribution.CENTOS: DistributionFamily.REDHAT,
    Distribution.ROCKY: DistributionFamily.REDHAT,
    Distribution.ALMA: DistributionFamily.REDHAT,
    Distribution.RHEL: DistributionFamily.REDHAT,
    Distribution.AMAZON: DistributionFamily.AMAZON,
}

PRIVILEGED = ("root", "sudo")


def _ports(value: Any) -> dict[int, str]:
    if not isinstance(value, dict):
        return {}
    ports: dict[int, str] = {}
    for port, process in value.items():
        try:
            ports[int(port)] = str(process)
        except (TypeError, ValueError):
            continue
    return dict(sorted(ports.items()))


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


@dataclass
class HardwareInfo:
    """Hardware summary reported by server-info."""

    cpu_cores: int | None = None
    ram_mb: int | None = None
    disk_total: str | None = None
    disk_used: str | None = None
    load_avg: str | None = None

    @classmethod
    def from_result(cls, data: Any) -> "HardwareInfo":
        if not isinstance(data, dict):
            return cls()

        def as_int(key: str) -> int | None:
            try:
                return int(data[key])
            except (KeyError, TypeError, ValueError):
                return None

        def as_str(key: str) -> str | None:
            value = data.get(key)
            return None if value is None else str(value)

        return cls(
            cpu_cores=as_int("cpu_cores"),
            ram_mb=as_int("ram_mb"),
            disk_total=as_str("disk_total"),
            disk_used=as_str("disk_used"),
            load_avg=as_str("load_avg"),
        )


@dataclass
class ServerInfo:
    """Result of the server-info playbook.

    Attributes:
        distro: Distribution id as reported by /etc/os-release
        permissions: "root", "sudo" or "none"
        ports: Listening TCP ports mapped to process names
        hardware: CPU, memory, disk and load summary
        ufw_installed: Whether UFW is installed
        ufw_active: Whether UFW is enabled
        ufw_rules: Current UFW rules, one per line

    Example:
        >>> info = ServerInfo.from_result({"distro": "ubuntu", "permissions": "root",
        ...                                "ports": {22: "sshd"}})
        >>> info.distribution
        <Distribution.UBUNTU: 'ubuntu'>
        >>> info.has_privileges
        True
    """

    distro: str = "unknown"
    permissions: str = "none"
    ports: dict[int, str] = field(default_factory=dict)
    hardware: HardwareInfo = field(default_factory=HardwareInfo)
    ufw_installed: bool = False
    ufw_active: bool = False
    ufw_rules: list[str] = field(default_factory=list)

    @classmethod
    def from_result(cls, data: dict[str, Any]) -> "ServerInfo":
        rules = data.get("ufw_rules")
        return cls(
            distro=str(data.get("distro") or "unknown"),
            permissions=str(data.get("permissions") or "none"),
            ports=_ports(data.get("ports")),
            hardware=HardwareInfo.from_result(data.get("hardware")),
            ufw_installed=_bool(data.get("ufw_installed", False)),
            ufw_active=_bool(data.get("ufw_active", False)),
            ufw_rules=[str(rule) for rule in rules] if isinstance(rules, list) else [],
        )

    @property
    def distribution(self) -> Distribution | None:
        try:
            return Distribution(self.distro)
        except ValueError:
            return None

    @property
    def is_supported(self) -> bool:
        dist = self.distribution
        return dist is not None and dist.is_supported

    @property
    def has_privileges(self) -> bool:
        return self.permissions in PRIVILEGED

    @property
    def display_name(self) -> str:
        dist = self.distribution
        return dist.display_name if dist else self.distro

    def as_facts(self) -> dict[str, Any]:
        """Facts attached to a ServerTarget for later variable injection."""
        return {
            "distro": self.distro,
            "permissions": self.permissions,
            "ports": dict(self.ports),
        }


@dataclass
class FirewallResult:
    """Result of the server-firewall playbook in apply mode."""

    rules_applied: int = 0
    ufw_enabled: bool = False

    @classmethod
    def from_result(cls, data: dict[str, Any]) -> "FirewallResult":
        try:
            applied = int(data.get("rules_applied", 0))
        except (TypeError, ValueError):
            applied = 0
        return cls(rules_applied=applied, ufw_enabled=_bool(data.get("ufw_enabled", False)))


def firewall_ports(ssh_port: int, requested: list[int]) -> list[int]:
    """Ports to allow, always including the SSH port.

    Args:
        ssh_port: Port the deployer connects on
        requested: Ports the operator asked to open

    Returns:
        Sorted, de-duplicated port list
    """
    return sorted({ssh_port, *requested})
