"""Async SSH transport for deployer.

Opens authenticated sessions to servers using asyncssh and runs commands in
one of two ways:
- run(): buffer all output and return it when the command exits
- run_streaming(): relay output chunk by chunk while the command runs

Connection failures are classified into KeyNotFound, AuthenticationRejected,
Unreachable and TransportError. Nothing in this module retries; retry
policy belongs to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import asyncssh

from .exceptions import AuthenticationRejected, TimedOut, TransportError, Unreachable
from .keys import DEFAULT_KEY_PATHS, resolve_private_key
from .logging import TRACE
from .types import ServerTarget

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0
CHUNK_SIZE = 4096

OutputCallback = Callable[[str], None]


@dataclass
class CommandResult:
    """Output and exit status of a finished remote command.

    Attributes:
        stdout: Everything written to stdout
        stderr: Everything written to stderr
        exit_status: Remote exit code, -1 if the process died from a signal
    """

    stdout: str = ""
    stderr: str = ""
    exit_status: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


@dataclass
class SSHConfig:
    """SSH connection configuration.

    Attributes:
        hostname: Remote hostname or IP
        port: SSH port
        username: SSH username
        connect_timeout: Bounded wait for the connection, in seconds
        keepalive_interval: Keepalive interval (0 to disable)
    """

    hostname: str
    port: int = 22
    username: str = "root"
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    keepalive_interval: float = 30.0

    def to_asyncssh_options(self) -> dict[str, Any]:
        """Convert to asyncssh.connect() kwargs."""
        return {
            "host": self.hostname,
            "port": self.port,
            "username": self.username,
            "connect_timeout": self.connect_timeout,
            "keepalive_interval": self.keepalive_interval,
            # Fresh cloud servers have no known_hosts entry yet
            "known_hosts": None,
        }


def _exit_status(value: int | None) -> int:
    return -1 if value is None else value


class SSHHost:
    """A single server reachable over SSH.

    The connection is opened on first use and cached until disconnect().
    Each SSHHost is one SSH connection; open a second instance for an
    independent session.

    Example:
        host = SSHHost("203.0.113.10", username="root")
        async with host:
            result = await host.run("uptime")
            print(result.stdout)
    """

    def __init__(
        self,
        hostname: str,
        port: int = 22,
        username: str = "root",
        private_key_path: str | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        key_fallbacks: Sequence[str] = DEFAULT_KEY_PATHS,
        name: str | None = None,
    ) -> None:
        """Initialize SSH host.

        Args:
            hostname: Remote hostname or IP
            port: SSH port
            username: SSH username
            private_key_path: Explicit private key, tried before the defaults
            connect_timeout: Bounded wait for the connection
            key_fallbacks: Default key locations
            name: Inventory name used in messages (defaults to hostname)
        """
        self.config = SSHConfig(
            hostname=hostname,
            port=port,
            username=username,
            connect_timeout=connect_timeout,
        )
        self.private_key_path = private_key_path
        self.key_fallbacks = key_fallbacks
        self._name = name or hostname
        self._conn: asyncssh.SSHClientConnection | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_target(
        cls,
        target: ServerTarget,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> "SSHHost":
        """Create an SSHHost for an inventory target."""
        return cls(
            hostname=target.host,
            port=target.port,
            username=target.username,
            private_key_path=target.private_key_path,
            connect_timeout=connect_timeout,
            name=target.name,
        )

    @property
    def name(self) -> str:
        """Host name for identification."""
        return self._name

    async def connect(self) -> asyncssh.SSHClientConnection:
        """Establish the SSH connection, reusing it if already open.

        Raises:
            KeyNotFound: No usable private key (checked before connecting)
            AuthenticationRejected: The server refused the credentials
            Unreachable: Connection refused, failed or timed out
            TransportError: Any other SSH protocol failure
        """
        async with self._lock:
            if self._conn is not None and not self._conn.is_closed():
                return self._conn

            key_path, key = resolve_private_key(
                self.private_key_path, self.key_fallbacks, host=self.name
            )
            options = self.config.to_asyncssh_options()
            options["client_keys"] = [key]
            target = f"{self.config.hostname}:{self.config.port}"

            logger.debug(f"Connecting to {self.name} ({target}) with key {key_path}")
            try:
                self._conn = await asyncssh.connect(**options)
            except asyncssh.PermissionDenied as e:
                raise AuthenticationRejected(
                    f"Authentication rejected by {self.name} ({target}) "
                    f"for user '{self.config.username}'",
                    host=self.name,
                ) from e
            except asyncio.TimeoutError as e:
                raise Unreachable(
                    f"Timed out connecting to {self.name} ({target}) "
                    f"after {self.config.connect_timeout:g}s",
                    host=self.name,
                ) from e
            except (OSError, asyncssh.ConnectionLost) as e:
                raise Unreachable(
                    f"Could not connect to {self.name} ({target}): {e}",
                    host=self.name,
                ) from e
            except asyncssh.Error as e:
                raise TransportError(
                    f"SSH error connecting to {self.name} ({target}): {e}",
                    host=self.name,
                ) from e

            logger.info(f"Connected to {self.name} ({target})")
            return self._conn

    async def disconnect(self) -> None:
        """Close the SSH connection."""
        async with self._lock:
            if self._conn is not None and not self._conn.is_closed():
                self._conn.close()
                await self._conn.wait_closed()
                logger.debug(f"Disconnected from {self.name}")
            self._conn = None

    async def __aenter__(self) -> "SSHHost":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    def _timed_out(self, timeout: float) -> TimedOut:
        return TimedOut(
            f"Command on {self.name} did not finish within {timeout:g}s",
            timeout=timeout,
            host=self.name,
        )

    def _transport_error(self, e: Exception) -> TransportError:
        return TransportError(f"SSH session to {self.name} failed: {e}", host=self.name)

    async def run(self, command: str, timeout: float = 300) -> CommandResult:
        """Run a command and buffer its output.

        Args:
            command: Shell command to execute
            timeout: Seconds before TimedOut is raised

        Returns:
            CommandResult with stdout, stderr and exit status

        Raises:
            TimedOut: The command did not exit in time
            TransportError: The session failed mid-command
        """
        conn = await self.connect()
        logger.log(TRACE, f"Running on {self.name}: {command}")

        try:
            result = await asyncio.wait_for(
                conn.run(command, check=False, errors="replace"),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Command timed out on {self.name} after {timeout:g}s")
            raise self._timed_out(timeout) from e
        except (asyncssh.Error, OSError) as e:
            raise self._transport_error(e) from e

        completed = CommandResult(
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            exit_status=_exit_status(result.exit_status),
        )
        logger.debug(
            f"Command completed on {self.name}: rc={completed.exit_status}, "
            f"stdout={len(completed.stdout)} bytes, stderr={len(completed.stderr)} bytes"
        )
        return completed

    async def run_streaming(
        self,
        command: str,
        timeout: float = 300,
        on_output: OutputCallback | None = None,
    ) -> CommandResult:
        """Run a command, relaying output as it arrives.

        stdout and stderr are drained concurrently so neither stream can
        stall the other. Each chunk is passed to on_output and also kept for
        the returned CommandResult.

        Args:
            command: Shell command to execute
            timeout: Seconds before TimedOut is raised
            on_output: Called with each chunk of text as it arrives

        Returns:
            CommandResult with the full stdout, stderr and exit status

        Raises:
            TimedOut: The command did not exit in time
            TransportError: The session failed mid-command

        Example:
            result = await host.run_streaming(
                script,
                timeout=900,
                on_output=lambda chunk: print(chunk, end=""),
            )
        """
        conn = await self.connect()
        logger.log(TRACE, f"Running (streaming) on {self.name}: {command}")

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        async def drain(stream: Any, sink: list[str]) -> None:
            while True:
                chunk = await stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                sink.append(chunk)
                if on_output is not None:
                    try:
                        on_output(chunk)
                    except Exception as e:
                        logger.warning(f"Output callback error: {e}")

        try:
            async with conn.create_process(command, errors="replace") as process:
                process.stdin.write_eof()

                async def collect() -> None:
                    await asyncio.gather(
                        drain(process.stdout, stdout_parts),
                        drain(process.stderr, stderr_parts),
                    )
                    await process.wait(check=False)

                try:
                    await asyncio.wait_for(collect(), timeout=timeout)
                except asyncio.TimeoutError as e:
                    logger.error(f"Command timed out on {self.name} after {timeout:g}s")
                    raise self._timed_out(timeout) from e

                exit_status = _exit_status(process.exit_status)
        except (asyncssh.Error, OSError) as e:
            raise self._transport_error(e) from e

        completed = CommandResult(
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            exit_status=exit_status,
        )
        logger.debug(
            f"Streaming command completed on {self.name}: rc={exit_status}, "
            f"stdout={len(completed.stdout)} bytes, stderr={len(completed.stderr)} bytes"
        )
        return completed
