"""Tests for CLI commands."""

from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner

from deployer import __version__
from deployer.cli import cli, parse_cron, parse_supervisor, parse_vars
from deployer.exceptions import ExecutionFailed, Unreachable
from deployer.inventory import InventoryFile, ServerRepository, SiteRepository
from deployer.progress import NullDisplay
from deployer.providers.base import CloudProvider
from deployer.runner import PlaybookRunner
from deployer.ssh import CommandResult
from deployer.types import (
    CronJob,
    PlaybookOutcome,
    RunPhase,
    ServerTarget,
    SiteContext,
    SupervisorProgram,
)

from conftest import FakeConnector, FakeHost

UBUNTU_INFO = {
    "distro": "ubuntu",
    "permissions": "root",
    "ports": {22: "sshd", 3306: "mysqld"},
    "hardware": {"cpu_cores": 2, "ram_mb": 1987},
    "ufw_installed": True,
    "ufw_active": False,
}


class FakePlaybooks:
    """Replaces PlaybookRunner.run with canned results per playbook."""

    def __init__(self, results=None, errors=None):
        self.results = {"server-info": UBUNTU_INFO, **(results or {})}
        self.errors = errors or {}
        self.calls = []

    async def run(self, target, request, site=None):
        self.calls.append((target, request, site))
        if request.playbook in self.errors:
            return PlaybookOutcome.error_result(
                request.playbook, target.name, self.errors[request.playbook], RunPhase.EXIT_FAILED
            )
        return PlaybookOutcome.success_result(
            request.playbook, target.name, self.results.get(request.playbook, {})
        )

    async def run_or_raise(self, target, request, site=None):
        outcome = await self.run(target, request, site)
        return outcome.unwrap()

    def requests(self, playbook):
        return [call for call in self.calls if call[1].playbook == playbook]


CLEAN_ENV = {
    name: None
    for name in (
        "DEPLOYER_INVENTORY",
        "DEPLOYER_PLAYBOOK_TIMEOUT",
        "DEPLOYER_READ_TIMEOUT",
        "DEPLOYER_CONNECT_TIMEOUT",
        "DEPLOYER_PLAYBOOK_DIR",
        "DIGITALOCEAN_API_TOKEN",
        "DO_API_TOKEN",
    )
}


@pytest.fixture
def playbooks():
    fake = FakePlaybooks()
    with patch("deployer.cli.PlaybookRunner") as runner_cls:
        runner_cls.return_value.run = AsyncMock(side_effect=fake.run)
        runner_cls.return_value.run_or_raise = AsyncMock(side_effect=fake.run_or_raise)
        fake.runner_cls = runner_cls
        yield fake


@pytest.fixture
def invoke(inventory_path):
    runner = CliRunner()

    def _invoke(*args, input=None):
        return runner.invoke(
            cli, ["--inventory", str(inventory_path), *args], input=input, env=CLEAN_ENV
        )

    return _invoke


@pytest.fixture
def web1(inventory_path):
    ServerRepository(InventoryFile(inventory_path)).create(
        ServerTarget(name="web1", host="203.0.113.10")
    )


class TestCliBasics:
    """Tests for the top-level group."""

    def test_version(self):
        """Test --version flag."""
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert f"deployer {__version__}" in result.output

    def test_help_without_command(self):
        result = CliRunner().invoke(cli, [])

        assert result.exit_code == 0
        assert "server" in result.output
        assert "site" in result.output

    def test_playbook_list(self, invoke):
        result = invoke("playbook", "list")

        assert result.exit_code == 0
        assert "server-info" in result.output
        assert "helpers" not in result.output

    def test_config_masks_token(self, inventory_path):
        result = CliRunner().invoke(
            cli, ["--inventory", str(inventory_path), "config"],
            env={"DIGITALOCEAN_API_TOKEN": "dop_v1_secret"},
        )

        assert result.exit_code == 0
        assert str(inventory_path) in result.output
        assert "dop_v1_secret" not in result.output

    def test_invalid_env_config(self):
        result = CliRunner().invoke(
            cli, ["server", "list"], env={"DEPLOYER_PLAYBOOK_TIMEOUT": "soon"}
        )

        assert result.exit_code == 1
        assert "DEPLOYER_PLAYBOOK_TIMEOUT" in result.output


class TestServerAdd:
    """Tests for server add."""

    def test_add(self, invoke, playbooks, inventory_path):
        """Test a reachable Ubuntu server is stored."""
        result = invoke("server", "add", "--name", "web1", "--host", "203.0.113.10")

        assert result.exit_code == 0, result.output
        assert "Server 'web1' added (Ubuntu, root)" in result.output
        stored = ServerRepository(InventoryFile(inventory_path)).find_by_name("web1")
        assert stored.host == "203.0.113.10"
        assert len(playbooks.requests("server-info")) == 1

    def test_unsupported_distribution(self, invoke, playbooks, inventory_path):
        playbooks.results["server-info"] = {"distro": "rocky", "permissions": "root"}

        result = invoke("server", "add", "--name", "web1", "--host", "203.0.113.10")

        assert result.exit_code == 1
        assert "Unsupported distribution: Rocky Linux" in result.output
        assert ServerRepository(InventoryFile(inventory_path)).all() == []

    def test_no_privileges(self, invoke, playbooks):
        playbooks.results["server-info"] = {"distro": "debian", "permissions": "none"}

        result = invoke("server", "add", "--name", "web1", "--host", "203.0.113.10")

        assert result.exit_code == 1
        assert "passwordless sudo" in result.output

    def test_unreachable(self, invoke, playbooks):
        """Test a classified failure exits 1 with its suggestions."""
        playbooks.errors["server-info"] = Unreachable("Could not connect to web1", host="web1")

        result = invoke("server", "add", "--name", "web1", "--host", "203.0.113.10")

        assert result.exit_code == 1
        assert "Unreachable: Could not connect to web1" in result.output
        assert "safe to rerun" in result.output

    def test_duplicate_checked_before_connecting(self, invoke, playbooks, web1):
        result = invoke("server", "add", "--name", "web2", "--host", "203.0.113.10")

        assert result.exit_code == 1
        assert "already registered as 'web1'" in result.output
        assert playbooks.calls == []

    def test_invalid_port(self, invoke, playbooks):
        result = invoke("server", "add", "--name", "web1", "--host", "h", "--port", "0")
        assert result.exit_code == 2


class TestServerCommands:
    """Tests for commands that act on a stored server."""

    def test_list(self, invoke, web1):
        result = invoke("server", "list")

        assert result.exit_code == 0
        assert "web1: root@203.0.113.10:22" in result.output

    def test_list_empty(self, invoke):
        assert "No servers in inventory" in invoke("server", "list").output

    def test_info(self, invoke, playbooks, web1):
        result = invoke("server", "info", "--server", "web1")

        assert result.exit_code == 0, result.output
        assert "Distribution: Ubuntu" in result.output
        assert "3306  mysqld" in result.output
        assert "ufw inactive" in result.output

    def test_info_selects_only_server(self, invoke, playbooks, web1):
        """Test --server may be omitted when there is one server."""
        result = invoke("server", "info", "--format", "json")

        assert result.exit_code == 0, result.output
        assert '"server": "web1"' in result.output

    def test_unknown_server(self, invoke, playbooks, web1):
        result = invoke("server", "info", "--server", "db1")

        assert result.exit_code == 1
        assert "Server 'db1' not found" in result.output

    def test_run_with_vars(self, invoke, playbooks, web1):
        """Test --var values reach the playbook and the result is printed."""
        playbooks.results["server-firewall"] = {"rules_applied": 3, "ufw_enabled": True}

        result = invoke(
            "server", "run", "--server", "web1", "-p", "server-firewall",
            "--var", "DEPLOYER_MODE=apply", "--var", "DEPLOYER_PORTS=22,80",
        )

        assert result.exit_code == 0, result.output
        assert yaml.safe_load(result.output) == {
            "rules_applied": 3,
            "ufw_enabled": True,
        }
        target, request, _ = playbooks.requests("server-firewall")[0]
        assert request.variables == {"DEPLOYER_MODE": "apply", "DEPLOYER_PORTS": "22,80"}
        assert target.facts["permissions"] == "root"

    def test_run_failure(self, invoke, playbooks, web1):
        playbooks.errors["php-install"] = ExecutionFailed(100, playbook="php-install")

        result = invoke("server", "run", "-p", "php-install", "--stream")

        assert result.exit_code == 1
        assert "failed with exit code 100" in result.output
        assert playbooks.requests("php-install")[0][1].mode.value == "stream"

    def test_run_missing_result_shows_output(self, invoke, web1):
        """Test the script output is reported when no result comes back."""
        connector = FakeConnector(
            FakeHost(CommandResult(stdout="DIAG: could not write result file\n")),
            FakeHost(CommandResult(stdout="")),
        )
        with patch("deployer.cli.PlaybookRunner") as runner_cls:
            runner_cls.side_effect = lambda **kwargs: PlaybookRunner(connector=connector, **kwargs)
            result = invoke("server", "run", "--server", "web1", "-p", "server-info")

        assert result.exit_code == 1
        assert "MalformedResult" in result.output
        assert "DIAG: could not write result file" in result.output

    def test_run_bad_var(self, invoke, playbooks, web1):
        result = invoke("server", "run", "-p", "server-info", "--var", "NOEQUALS")

        assert result.exit_code == 1
        assert "Expected KEY=VALUE" in result.output

    def test_firewall(self, invoke, playbooks, web1):
        """Test the SSH port is always allowed and blocked ports are flagged."""
        playbooks.results["server-firewall"] = {"rules_applied": 3, "ufw_enabled": True}

        result = invoke("server", "firewall", "--server", "web1", "--yes")

        assert result.exit_code == 0, result.output
        assert "port 3306 (mysqld)" in result.output
        assert "Firewall enabled with 3 rule(s)" in result.output
        detect, apply = [call[1] for call in playbooks.requests("server-firewall")]
        assert detect.variables == {"DEPLOYER_MODE": "detect"}
        assert apply.variables == {"DEPLOYER_MODE": "apply", "DEPLOYER_PORTS": "22,80,443"}

    def test_firewall_declined(self, invoke, playbooks, web1):
        result = invoke("server", "firewall", "--allow", "8080", input="n\n")

        assert result.exit_code == 1
        assert playbooks.requests("server-firewall") == []

    def test_install_php(self, invoke, playbooks, web1):
        playbooks.results["php-install"] = {"php_version": "8.2", "php_binary": "/usr/bin/php8.2"}

        result = invoke("server", "install-php", "--php-version", "8.2")

        assert result.exit_code == 0, result.output
        assert "PHP 8.2 installed on web1" in result.output
        request = playbooks.requests("php-install")[0][1]
        assert request.variables == {"DEPLOYER_PHP_VERSION": "8.2"}
        assert request.timeout >= 900

    def test_delete(self, invoke, web1, inventory_path):
        result = invoke("server", "delete", "--server", "web1", "--yes")

        assert result.exit_code == 0
        assert ServerRepository(InventoryFile(inventory_path)).all() == []

    def test_delete_destroy_requires_provisioned(self, invoke, web1):
        result = invoke("server", "delete", "--server", "web1", "--destroy", "--yes")

        assert result.exit_code == 1
        assert "was not provisioned" in result.output


class FakeProvider(CloudProvider):
    name = "digitalocean"

    def __init__(self, fail_on_address=False):
        self.fail_on_address = fail_on_address
        self.destroyed = []
        self.closed = False

    async def create(self, spec):
        return "1001"

    async def await_ready(self, resource_id):
        return None

    async def get_address(self, resource_id):
        if self.fail_on_address:
            raise Unreachable("no address yet")
        return "198.51.100.7"

    async def destroy(self, resource_id):
        self.destroyed.append(resource_id)

    async def aclose(self):
        self.closed = True


class TestProvision:
    """Tests for server provision."""

    ARGS = (
        "server", "provision", "digitalocean", "--name", "web9", "--region", "nyc3",
        "--size", "s-1vcpu-1gb", "--ssh-key", "123",
    )

    def test_provision(self, invoke, playbooks, inventory_path):
        provider = FakeProvider()
        with patch("deployer.cli.create_provider", return_value=provider):
            result = invoke(*self.ARGS)

        assert result.exit_code == 0, result.output
        assert "Server 'web9' provisioned at 198.51.100.7" in result.output
        stored = ServerRepository(InventoryFile(inventory_path)).find_by_name("web9")
        assert stored.provider_resource_id == "1001"
        assert provider.closed is True

    def test_provision_verifies_silently(self, invoke, playbooks):
        """Test the reachability check runs without the interactive display."""
        with patch("deployer.cli.create_provider", return_value=FakeProvider()):
            result = invoke(*self.ARGS)

        assert result.exit_code == 0, result.output
        assert playbooks.requests("server-info")
        displays = [c.kwargs["display"] for c in playbooks.runner_cls.call_args_list]
        assert len(displays) == 1
        assert isinstance(displays[0], NullDisplay)

    def test_provision_rolls_back(self, invoke, playbooks, inventory_path):
        provider = FakeProvider(fail_on_address=True)
        with patch("deployer.cli.create_provider", return_value=provider):
            result = invoke(*self.ARGS)

        assert result.exit_code == 1
        assert "Rolled back" in result.output
        assert provider.destroyed == ["1001"]
        assert ServerRepository(InventoryFile(inventory_path)).all() == []

    def test_provision_needs_token(self, invoke):
        result = invoke(*self.ARGS)

        assert result.exit_code == 1
        assert "DigitalOcean API token is not set" in result.output


class TestSiteCommands:
    """Tests for site commands."""

    def test_add_and_list(self, invoke, web1):
        result = invoke("site", "add", "--domain", "example.com", "--server", "web1")
        assert result.exit_code == 0, result.output

        result = invoke("site", "list")
        assert "example.com: web1 (PHP 8.3, 0 cron job(s))" in result.output

    def test_add_unknown_server(self, invoke):
        result = invoke("site", "add", "--domain", "example.com", "--server", "web1")

        assert result.exit_code == 1
        assert "Server 'web1' not found" in result.output

    def test_cron_sync(self, invoke, playbooks, web1, inventory_path):
        """Test --cron replaces the stored jobs and they reach the playbook."""
        SiteRepository(InventoryFile(inventory_path)).create(
            SiteContext(domain="example.com", server="web1")
        )
        playbooks.results["site-cron-sync"] = {"crons_synced": 1}

        result = invoke(
            "site", "cron-sync", "--domain", "example.com",
            "--cron", "*/5 * * * *|bin/cleanup.sh",
        )

        assert result.exit_code == 0, result.output
        assert "Synced 1 cron job(s) for example.com" in result.output
        expected = [CronJob(script="bin/cleanup.sh", schedule="*/5 * * * *")]
        _, _, site = playbooks.requests("site-cron-sync")[0]
        assert site.crons == expected
        stored = SiteRepository(InventoryFile(inventory_path)).find_by_domain("example.com")
        assert stored.crons == expected

    def test_supervisor_sync(self, invoke, playbooks, web1, inventory_path):
        """Test --program replaces the stored programs and they reach the playbook."""
        SiteRepository(InventoryFile(inventory_path)).create(
            SiteContext(domain="example.com", server="web1")
        )
        playbooks.results["site-supervisor-sync"] = {"supervisors_synced": 2}

        result = invoke(
            "site", "supervisor-sync", "--domain", "example.com",
            "--program", "queue|scripts/queue.sh",
            "--program", "horizon|scripts/horizon.sh",
            "--numprocs", "2",
        )

        assert result.exit_code == 0, result.output
        assert "Synced 2 supervisor program(s) for example.com" in result.output
        expected = [
            SupervisorProgram(program="queue", script="scripts/queue.sh", numprocs=2),
            SupervisorProgram(program="horizon", script="scripts/horizon.sh", numprocs=2),
        ]
        _, _, site = playbooks.requests("site-supervisor-sync")[0]
        assert site.supervisors == expected
        stored = SiteRepository(InventoryFile(inventory_path)).find_by_domain("example.com")
        assert stored.supervisors == expected

    def test_supervisor_sync_keeps_stored_programs(self, invoke, playbooks, web1, inventory_path):
        sites = SiteRepository(InventoryFile(inventory_path))
        site = sites.create(SiteContext(domain="example.com", server="web1"))
        site.supervisors = [SupervisorProgram(program="queue", script="scripts/queue.sh")]
        sites.update(site)

        result = invoke("site", "supervisor-sync", "--domain", "example.com")

        assert result.exit_code == 0, result.output
        assert "Synced 1 supervisor program(s) for example.com" in result.output
        _, _, sent = playbooks.requests("site-supervisor-sync")[0]
        assert [s.program for s in sent.supervisors] == ["queue"]

    def test_supervisor_sync_invalid_program(self, invoke, playbooks, web1, inventory_path):
        SiteRepository(InventoryFile(inventory_path)).create(
            SiteContext(domain="example.com", server="web1")
        )

        result = invoke(
            "site", "supervisor-sync", "--domain", "example.com",
            "--program", "../queue|scripts/queue.sh",
        )

        assert result.exit_code == 1
        assert "Invalid program name" in result.output
        assert playbooks.requests("site-supervisor-sync") == []


class TestParsers:
    """Tests for option parsers."""

    def test_parse_vars(self):
        assert parse_vars(("A=1", "B='two words' C=x=y")) == {
            "A": "1",
            "B": "two words",
            "C": "x=y",
        }

    def test_parse_vars_invalid(self):
        with pytest.raises(ValueError):
            parse_vars(("NOPE",))
        with pytest.raises(ValueError):
            parse_vars(("A='unclosed",))

    def test_parse_cron(self):
        assert parse_cron("0 3 * * * | bin/backup.sh") == CronJob(
            script="bin/backup.sh", schedule="0 3 * * *"
        )

    @pytest.mark.parametrize("value", ["0 3 * * *", "|bin/x.sh", "0 3 * * *|"])
    def test_parse_cron_invalid(self, value):
        with pytest.raises(ValueError):
            parse_cron(value)

    def test_parse_supervisor(self):
        assert parse_supervisor(" queue | scripts/queue.sh ", numprocs=3) == SupervisorProgram(
            program="queue", script="scripts/queue.sh", numprocs=3
        )

    @pytest.mark.parametrize(
        "value", ["queue", "|scripts/queue.sh", "queue|", "my queue|q.sh", "a/b|q.sh"]
    )
    def test_parse_supervisor_invalid(self, value):
        with pytest.raises(ValueError):
            parse_supervisor(value)
