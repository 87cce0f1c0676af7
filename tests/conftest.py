"""Shared fixtures for deployer tests."""

from typing import Callable

import pytest

from deployer.ssh import CommandResult
from deployer.types import ServerTarget


class FakeHost:
    """Stand-in for SSHHost that replays a scripted result.

    Each FakeHost is one session: the runner opens one for the playbook and
    a second one for the result read-back.
    """

    def __init__(
        self,
        result: CommandResult | None = None,
        error: Exception | None = None,
        connect_error: Exception | None = None,
        chunks: tuple[str, ...] = (),
    ):
        self.result = result or CommandResult()
        self.error = error
        self.connect_error = connect_error
        self.chunks = chunks
        self.commands: list[str] = []
        self.timeouts: list[float] = []
        self.streamed = False
        self.entered = False
        self.exited = False

    async def __aenter__(self) -> "FakeHost":
        if self.connect_error is not None:
            raise self.connect_error
        self.entered = True
        return self

    async def __aexit__(self, *exc) -> None:
        self.exited = True

    async def run(self, command: str, timeout: float = 300) -> CommandResult:
        self.commands.append(command)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        return self.result

    async def run_streaming(
        self,
        command: str,
        timeout: float = 300,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        self.streamed = True
        self.commands.append(command)
        self.timeouts.append(timeout)
        for chunk in self.chunks:
            if on_output is not None:
                on_output(chunk)
        if self.error is not None:
            raise self.error
        return self.result


class FakeConnector:
    """Hands out FakeHosts in order, one per session opened."""

    def __init__(self, *hosts: FakeHost):
        self.hosts = list(hosts)
        self.opened: list[FakeHost] = []
        self.targets: list[ServerTarget] = []

    def __call__(self, target: ServerTarget) -> FakeHost:
        if not self.hosts:
            raise AssertionError("Unexpected extra SSH session")
        host = self.hosts.pop(0)
        self.opened.append(host)
        self.targets.append(target)
        return host


@pytest.fixture
def target():
    """A plain server target without facts."""
    return ServerTarget(name="web1", host="203.0.113.10")


@pytest.fixture
def ubuntu_target():
    """A server target with gathered facts."""
    return ServerTarget(
        name="web1",
        host="203.0.113.10",
        facts={"distro": "ubuntu", "permissions": "root", "ports": {22: "sshd"}},
    )


@pytest.fixture
def inventory_path(tmp_path):
    """Path to an inventory file that does not exist yet."""
    return tmp_path / "deployer.yml"
