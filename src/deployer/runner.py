"""Playbook execution.

PlaybookRunner is the single entry point for running a playbook against a
server. One call:

1. allocates a fresh remote result file
2. builds the variables and the remote script payload
3. runs it over SSH, streaming or capturing output
4. on exit 0, reads the result file back over a second connection
5. returns a PlaybookOutcome: the parsed result or a classified failure
"""

import logging
from functools import partial
from typing import Any, Callable

from .exceptions import (
    AuthenticationRejected,
    DeployerError,
    ExecutionFailed,
    KeyNotFound,
    MalformedResult,
    TimedOut,
    TransportError,
    Unreachable,
)
from .logging import log_performance
from .output_channel import DEFAULT_DIRECTORY, OutputChannel
from .progress import NullDisplay, PlaybookDisplay
from .script import PlaybookLibrary
from .ssh import DEFAULT_CONNECT_TIMEOUT, CommandResult, SSHHost
from .types import (
    ExecutionMode,
    PlaybookOutcome,
    PlaybookRequest,
    RunPhase,
    ServerTarget,
    SiteContext,
)
from .variables import build_variables

logger = logging.getLogger(__name__)

READ_BACK_TIMEOUT = 30.0

Connector = Callable[[ServerTarget], SSHHost]

_FAILURE_PHASES: dict[type, RunPhase] = {
    ExecutionFailed: RunPhase.EXIT_FAILED,
    TimedOut: RunPhase.TIMED_OUT,
    MalformedResult: RunPhase.MALFORMED_RESULT,
    TransportError: RunPhase.TRANSPORT_ERROR,
    Unreachable: RunPhase.TRANSPORT_ERROR,
    AuthenticationRejected: RunPhase.TRANSPORT_ERROR,
    KeyNotFound: RunPhase.TRANSPORT_ERROR,
}


class PlaybookRunner:
    """Runs playbooks against servers.

    Attributes:
        library: Source of playbook scripts and the helper library
        connector: Opens a new SSH session for a target; called once for the
            playbook and once more for the result read-back
        display: Renders spinners and streamed output, and the raw
            diagnostics of a failed script (output, unparseable result)
        read_timeout: Timeout for the result read-back, separate from the
            playbook's own timeout
        output_dir: Remote directory for result files

    Example:
        runner = PlaybookRunner()
        outcome = await runner.run(
            target,
            PlaybookRequest("php-install", "Installing PHP 8.3",
                            variables={"DEPLOYER_PHP_VERSION": "8.3"},
                            mode=ExecutionMode.STREAM, timeout=900),
        )
        result = outcome.unwrap()
    """

    def __init__(
        self,
        library: PlaybookLibrary | None = None,
        connector: Connector | None = None,
        display: PlaybookDisplay | None = None,
        read_timeout: float = READ_BACK_TIMEOUT,
        output_dir: str = DEFAULT_DIRECTORY,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.library = library or PlaybookLibrary()
        self.connector = connector or partial(
            SSHHost.from_target, connect_timeout=connect_timeout
        )
        self.display = display or NullDisplay()
        self.read_timeout = read_timeout
        self.output_dir = output_dir

    async def run(
        self,
        target: ServerTarget,
        request: PlaybookRequest,
        site: SiteContext | None = None,
    ) -> PlaybookOutcome:
        """Run a playbook and classify the outcome.

        Deployer errors are returned inside the outcome rather than raised.
        Invalid variables are programming errors and do propagate.

        Args:
            target: Server to run against
            request: Playbook, description, variables, mode and timeout
            site: Site context for site-level playbooks

        Returns:
            PlaybookOutcome with the parsed result or the classified error

        Raises:
            ValueError: If an explicit variable name is invalid
            TypeError: If an explicit variable cannot be JSON encoded
        """
        channel = OutputChannel.allocate(self.output_dir)
        variables = build_variables(channel.path, target, site, request.variables)

        phase = RunPhase.PREPARED
        output = ""
        try:
            command = self.library.payload(request.playbook, variables).render()

            phase = RunPhase.EXECUTING
            with log_performance(logger, f"Playbook {request.playbook}", server=target.name):
                result = await self._execute(target, request, command)
            output = result.output

            if not result.ok:
                raise ExecutionFailed(
                    result.exit_status, output, host=target.name, playbook=request.playbook
                )

            phase = RunPhase.READING_RESULT
            data = await self._read_result(target, request, channel)
        except DeployerError as e:
            failed_phase = _FAILURE_PHASES.get(type(e), phase)
            logger.warning(
                f"Playbook {request.playbook} failed on {target.name} "
                f"({failed_phase.value}): {e}"
            )
            outcome = PlaybookOutcome.error_result(
                request.playbook, target.name, e, failed_phase, output
            )
            if isinstance(e, (ExecutionFailed, MalformedResult)):
                self.display.show_failure(
                    outcome, output_shown=request.mode is ExecutionMode.STREAM
                )
            return outcome

        logger.info(f"Playbook {request.playbook} succeeded on {target.name}")
        return PlaybookOutcome.success_result(request.playbook, target.name, data, output)

    async def run_or_raise(
        self,
        target: ServerTarget,
        request: PlaybookRequest,
        site: SiteContext | None = None,
    ) -> dict[str, Any]:
        """Run a playbook and return its result map, raising on failure."""
        outcome = await self.run(target, request, site)
        return outcome.unwrap()

    async def _execute(
        self,
        target: ServerTarget,
        request: PlaybookRequest,
        command: str,
    ) -> CommandResult:
        host = self.connector(target)
        async with host:
            if request.mode is ExecutionMode.STREAM:
                self.display.stream_start(request.description)
                try:
                    return await host.run_streaming(
                        command, timeout=request.timeout, on_output=self.display.write
                    )
                finally:
                    self.display.stream_end()

            with self.display.status(request.description):
                return await host.run(command, timeout=request.timeout)

    async def _read_result(
        self,
        target: ServerTarget,
        request: PlaybookRequest,
        channel: OutputChannel,
    ) -> dict[str, Any]:
        # The playbook's session is already closed; use a fresh one
        host = self.connector(target)
        try:
            async with host:
                result = await host.run(channel.read_command(), timeout=self.read_timeout)
        except TimedOut as e:
            raise TimedOut(
                f"Reading the result of {request.playbook} from {target.name} "
                f"did not finish within {self.read_timeout:g}s",
                timeout=self.read_timeout,
                phase="read",
                host=target.name,
            ) from e

        if not result.ok and result.stdout:
            logger.warning(f"Could not remove {channel.path} on {target.name}")
        return channel.parse(result.stdout, host=target.name)
