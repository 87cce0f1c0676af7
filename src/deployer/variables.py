"""Variable injection for playbook scripts.

Playbooks receive all of their context as DEPLOYER_* environment variables
prefixed onto the remote command line. This module derives those variables
from the target server, its gathered facts and an optional site, then
merges in the caller's explicit variables, which always win.
"""

import json
import re
import shlex
from typing import Any

from .types import ServerTarget, SiteContext

PREFIX = "DEPLOYER_"
OUTPUT_FILE_VAR = "DEPLOYER_OUTPUT_FILE"

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def encode_value(name: str, value: Any) -> str:
    """Convert a variable value to the string the script will see.

    Scalars are stringified, booleans become "true"/"false" and lists or
    mappings are JSON encoded.

    Args:
        name: Variable name, for error messages
        value: Value to encode

    Returns:
        Encoded value, not yet shell quoted

    Raises:
        TypeError: If a list or mapping cannot be JSON encoded
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, dict)):
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise TypeError(f"Variable {name} cannot be JSON encoded: {e}") from e
    return str(value)


def derive_variables(
    output_file: str,
    target: ServerTarget,
    site: SiteContext | None = None,
) -> dict[str, Any]:
    """Derive the automatic variables for a target and optional site."""
    derived: dict[str, Any] = {
        OUTPUT_FILE_VAR: output_file,
        "DEPLOYER_SERVER_NAME": target.name,
        "DEPLOYER_SSH_PORT": target.port,
    }

    if target.facts is not None:
        derived["DEPLOYER_DISTRO"] = target.facts.get("distro", "unknown")
        derived["DEPLOYER_PERMS"] = target.facts.get("permissions", "none")

    if site is not None:
        derived["DEPLOYER_SITE_DOMAIN"] = site.domain
        derived["DEPLOYER_PHP_VERSION"] = site.php_version
        if site.repo:
            derived["DEPLOYER_SITE_REPO"] = site.repo
            derived["DEPLOYER_SITE_BRANCH"] = site.branch
        derived["DEPLOYER_CRONS"] = [cron.to_dict() for cron in site.crons]
        derived["DEPLOYER_SUPERVISORS"] = [sup.to_dict() for sup in site.supervisors]

    return derived


def build_variables(
    output_file: str,
    target: ServerTarget,
    site: SiteContext | None = None,
    explicit: dict[str, Any] | None = None,
) -> dict[str, str]:
    """Build the flat, ordered variable map for one playbook run.

    Args:
        output_file: Remote path the script writes its result to
        target: Server the playbook runs against
        site: Site context, when the playbook operates on a site
        explicit: Caller supplied variables; these override derived ones

    Returns:
        Ordered mapping of variable name to encoded string value

    Raises:
        ValueError: If a variable name is not a shell identifier
        TypeError: If a list or mapping value cannot be JSON encoded

    Example:
        >>> target = ServerTarget(name="web1", host="203.0.113.10",
        ...                       facts={"distro": "ubuntu", "permissions": "root"})
        >>> build_variables("/tmp/out.yml", target, explicit={"DEPLOYER_PERMS": "sudo"})
        {'DEPLOYER_OUTPUT_FILE': '/tmp/out.yml', 'DEPLOYER_SERVER_NAME': 'web1',
         'DEPLOYER_SSH_PORT': '22', 'DEPLOYER_DISTRO': 'ubuntu', 'DEPLOYER_PERMS': 'sudo'}
    """
    merged = derive_variables(output_file, target, site)
    merged.update(explicit or {})

    variables: dict[str, str] = {}
    for name, value in merged.items():
        if not _NAME_RE.match(name):
            raise ValueError(f"Invalid variable name: {name!r}")
        if value is None:
            continue
        variables[name] = encode_value(name, value)
    return variables


def format_env_prefix(variables: dict[str, str]) -> str:
    """Render variables as a NAME='value' command line prefix.

    Every value is quoted on its own, so values may contain spaces, quotes,
    JSON or newlines.
    """
    return " ".join(f"{name}={shlex.quote(value)}" for name, value in variables.items())
