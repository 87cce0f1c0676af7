"""Out-of-band result channel for playbooks.

A playbook's exit code says whether it worked; its structured result comes
back through a temporary YAML file on the remote host. The path is part of
the script's variables, and the runner reads it back and deletes it in a
single command over a second connection.
"""

import secrets
import shlex
import time
from dataclasses import dataclass
from typing import Any, Callable

import yaml

from .exceptions import MalformedResult

DEFAULT_DIRECTORY = "/tmp"
FILE_PREFIX = "deployer-output"


@dataclass(frozen=True)
class OutputChannel:
    """A remote result file, unique to one playbook run.

    Attributes:
        path: Absolute path of the result file on the remote host

    Example:
        >>> channel = OutputChannel.allocate()
        >>> channel.path
        '/tmp/deployer-output-1760700000-9f86d081884c7d65.yml'
        >>> channel.read_command()
        'cat /tmp/deployer-output-...yml 2>/dev/null && rm -f /tmp/deployer-output-...yml'
    """

    path: str

    @classmethod
    def allocate(
        cls,
        directory: str = DEFAULT_DIRECTORY,
        clock: Callable[[], float] = time.time,
    ) -> "OutputChannel":
        """Allocate a fresh path from a timestamp and 64 random bits."""
        suffix = secrets.token_hex(8)
        return cls(f"{directory.rstrip('/')}/{FILE_PREFIX}-{int(clock())}-{suffix}.yml")

    def read_command(self) -> str:
        """Command that prints the result file and then deletes it."""
        quoted = shlex.quote(self.path)
        return f"cat {quoted} 2>/dev/null && rm -f {quoted}"

    def parse(self, content: str, host: str | None = None) -> dict[str, Any]:
        """Decode the result document.

        Args:
            content: Text read back from the result file
            host: Server name, for error reporting

        Returns:
            The decoded mapping with string keys

        Raises:
            MalformedResult: If the content is empty, not valid YAML, or
                not a mapping at the top level
        """
        if not content or not content.strip():
            raise MalformedResult(
                f"Playbook produced no result (empty or missing {self.path})",
                raw=content,
                host=host,
            )
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise MalformedResult(
                f"Playbook result is not valid YAML: {e}", raw=content, host=host
            ) from e
        if not isinstance(data, dict):
            raise MalformedResult(
                f"Playbook result must be a mapping, got {type(data).__name__}",
                raw=content,
                host=host,
            )
        return {str(key): value for key, value in data.items()}
