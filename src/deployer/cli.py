"""Command-line interface for deployer."""

import asyncio
import functools
import json
import re
import shlex
from dataclasses import dataclass
from typing import Any, Callable, Optional

import click
import yaml

from deployer import __version__
from deployer.config import DeployerConfig
from deployer.exceptions import DeployerError
from deployer.facts import Distribution, FirewallResult, ServerInfo, firewall_ports
from deployer.inventory import InventoryFile, ServerRepository, SiteRepository
from deployer.logging import LEVEL_NAMES, configure_logging, get_logger, resolve_level
from deployer.progress import NullDisplay, PlaybookDisplay
from deployer.runner import PlaybookRunner
from deployer.saga import ProvisioningSaga, ProvisionRequest, SagaState
from deployer.script import PlaybookLibrary
from deployer.types import (
    CronJob,
    ExecutionMode,
    PlaybookOutcome,
    PlaybookRequest,
    ServerTarget,
    SiteContext,
    SupervisorProgram,
)

logger = get_logger("deployer.cli")

DEFAULT_FIREWALL_PORTS = (80, 443)
PHP_INSTALL_TIMEOUT = 900
PROGRAM_NAME = re.compile(r"[A-Za-z0-9_-]+")


@dataclass
class CliState:
    """Objects shared by all commands of one invocation."""

    config: DeployerConfig
    display: PlaybookDisplay

    @functools.cached_property
    def inventory(self) -> InventoryFile:
        return InventoryFile(self.config.inventory_path)

    @property
    def servers(self) -> ServerRepository:
        return ServerRepository(self.inventory)

    @property
    def sites(self) -> SiteRepository:
        return SiteRepository(self.inventory)

    def runner(self, display: PlaybookDisplay | None = None) -> PlaybookRunner:
        return PlaybookRunner(
            library=PlaybookLibrary(self.config.playbook_dir),
            display=display or self.display,
            read_timeout=self.config.read_timeout,
            connect_timeout=self.config.connect_timeout,
        )


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn classified deployer errors into a clean exit with status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except DeployerError as e:
            logger.debug("Command failed", command=func.__name__, error_type=e.error_type)
            raise click.ClickException(e.format_text()) from e

    return wrapper


def parse_vars(pairs: tuple[str, ...]) -> dict[str, str]:
    """Parse --var KEY=VALUE options into a dictionary.

    Args:
        pairs: Raw option values. A single value may hold several
            space-separated pairs, and values may be shell-quoted.

    Returns:
        Dictionary of variable names to string values

    Raises:
        ValueError: If a pair has no equals sign or cannot be split

    Example:
        >>> parse_vars(("DEPLOYER_MODE=apply", "DEPLOYER_PORTS=22,80"))
        {'DEPLOYER_MODE': 'apply', 'DEPLOYER_PORTS': '22,80'}

        >>> parse_vars(("GREETING='hello world'",))
        {'GREETING': 'hello world'}
    """
    result: dict[str, str] = {}
    for raw in pairs:
        try:
            tokens = shlex.split(raw)
        except ValueError as e:
            raise ValueError(f"Failed to parse variable: {e}") from e
        for token in tokens:
            if "=" not in token:
                raise ValueError(f"Invalid variable format: '{token}'. Expected KEY=VALUE.")
            key, value = token.split("=", 1)
            result[key] = value
    return result


def parse_cron(value: str) -> CronJob:
    """Parse a "SCHEDULE|SCRIPT" cron definition.

    Raises:
        ValueError: If the separator is missing or either side is empty
    """
    schedule, sep, script = value.partition("|")
    if not sep or not schedule.strip() or not script.strip():
        raise ValueError(f"Invalid cron definition: '{value}'. Expected 'SCHEDULE|SCRIPT'.")
    return CronJob(script=script.strip(), schedule=schedule.strip())


def parse_supervisor(value: str, numprocs: int = 1, stopwaitsecs: int = 3600) -> SupervisorProgram:
    """Parse a "PROGRAM|SCRIPT" supervisor definition.

    The program name becomes part of a file name on the server, so it is
    limited to letters, digits, '-' and '_'.

    Raises:
        ValueError: If the separator is missing or the program name is invalid
    """
    program, sep, script = value.partition("|")
    program, script = program.strip(), script.strip()
    if not sep or not program or not script:
        raise ValueError(f"Invalid supervisor definition: '{value}'. Expected 'PROGRAM|SCRIPT'.")
    if not PROGRAM_NAME.fullmatch(program):
        raise ValueError(
            f"Invalid program name: '{program}'. Use letters, digits, '-' and '_' only."
        )
    return SupervisorProgram(
        program=program, script=script, numprocs=numprocs, stopwaitsecs=stopwaitsecs
    )


def select_server(state: CliState, name: str | None) -> ServerTarget:
    """Find a server by name, or the only server when no name is given."""
    servers = state.servers.all()
    if not servers:
        raise click.ClickException(
            "No servers in inventory. Add one with 'deployer server add'."
        )
    if name is None:
        if len(servers) == 1:
            return servers[0]
        names = ", ".join(s.name for s in servers)
        raise click.ClickException(f"Specify --server (one of: {names})")

    target = state.servers.find_by_name(name)
    if target is None:
        raise click.ClickException(f"Server '{name}' not found in {state.config.inventory_path}")
    return target


def run_playbook(
    state: CliState,
    target: ServerTarget,
    request: PlaybookRequest,
    site: SiteContext | None = None,
) -> dict[str, Any]:
    """Run a playbook and return its result, exiting 1 on failure."""
    log = logger.bind(server=target.name, playbook=request.playbook)
    log.debug("Running playbook", mode=request.mode.value)
    outcome: PlaybookOutcome = asyncio.run(state.runner().run(target, request, site))
    if not outcome.success:
        assert outcome.error is not None
        log.debug("Playbook failed", phase=outcome.phase.value)
        raise click.ClickException(outcome.error.format_text())
    return outcome.result


def gather_facts(state: CliState, target: ServerTarget) -> tuple[ServerTarget, ServerInfo]:
    """Run server-info and attach the facts to the target."""
    result = run_playbook(
        state,
        target,
        PlaybookRequest(
            "server-info",
            f"Retrieving server information from {target.name}",
            timeout=state.config.playbook_timeout,
        ),
    )
    info = ServerInfo.from_result(result)
    return target.with_facts(info.as_facts()), info


def require_managed(info: ServerInfo) -> None:
    """Reject servers the bundled playbooks cannot manage."""
    if not info.is_supported:
        supported = ", ".join(d.display_name for d in Distribution.supported())
        raise click.ClickException(
            f"Unsupported distribution: {info.display_name}. Supported: {supported}"
        )
    if not info.has_privileges:
        raise click.ClickException(
            "The SSH user needs to be root or have passwordless sudo"
        )


def format_server_info(target: ServerTarget, info: ServerInfo) -> str:
    """Format server-info results as human-readable text."""
    hw = info.hardware
    lines = [
        f"\nServer: {target.name} ({target.address})",
        f"  Distribution: {info.display_name}",
        f"  Permissions:  {info.permissions}",
    ]
    if hw.cpu_cores is not None:
        lines.append(f"  CPU cores:    {hw.cpu_cores}")
    if hw.ram_mb is not None:
        lines.append(f"  Memory:       {hw.ram_mb} MB")
    if hw.disk_total:
        lines.append(f"  Disk:         {hw.disk_used or '?'} used of {hw.disk_total}")
    if hw.load_avg:
        lines.append(f"  Load average: {hw.load_avg}")

    lines.append("  Listening TCP ports:")
    if info.ports:
        for port, process in info.ports.items():
            lines.append(f"    {port:>5}  {process}")
    else:
        lines.append("    (none)")

    if not info.ufw_installed:
        lines.append("  Firewall:     ufw not installed")
    elif not info.ufw_active:
        lines.append("  Firewall:     ufw inactive")
    else:
        lines.append("  Firewall:     ufw active")
        for rule in info.ufw_rules:
            lines.append(f"    {rule}")
    return "\n".join(lines)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("--inventory", "-i", default=None,
              help="Inventory file (default: $DEPLOYER_INVENTORY or deployer.yml)")
@click.option("-v", "--verbose", count=True,
              help="Increase verbosity: -v=info, -vv=debug, -vvv=trace")
@click.option("--log-level", type=click.Choice(list(LEVEL_NAMES)),
              default=None, help="Set log level explicitly (overrides -v)")
@click.option("--log-file", type=click.Path(), default=None,
              help="Write logs to file (in addition to console)")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    inventory: Optional[str],
    verbose: int,
    log_level: Optional[str],
    log_file: Optional[str],
) -> None:
    """Deployer - provision, configure and inspect servers over SSH."""
    if version:
        click.echo(f"deployer {__version__}")
        ctx.exit(0)

    configure_logging(level=resolve_level(verbose, log_level), log_file=log_file)

    try:
        config = DeployerConfig.from_env()
    except ValueError as e:
        raise click.ClickException(str(e))
    if inventory:
        config.inventory_path = inventory

    ctx.obj = CliState(config=config, display=PlaybookDisplay())

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("config")
@click.pass_obj
def show_config(state: CliState) -> None:
    """Show the effective configuration."""
    click.echo(state.config.format_text())


@cli.group()
def playbook() -> None:
    """Playbook discovery commands."""
    pass


@playbook.command("list")
@click.pass_obj
def playbook_list(state: CliState) -> None:
    """List available playbooks."""
    library = PlaybookLibrary(state.config.playbook_dir)
    names = library.names()
    if not names:
        click.echo(f"No playbooks found in {library.directory}")
        return
    for name in names:
        click.echo(name)


@cli.group()
def server() -> None:
    """Server management commands."""
    pass


@server.command("add")
@click.option("--name", required=True, help="Inventory name for the server")
@click.option("--host", required=True, help="IP address or hostname")
@click.option("--port", type=click.IntRange(1, 65535), default=22, help="SSH port")
@click.option("--username", default="root", help="SSH username")
@click.option("--private-key-path", default=None,
              help="Private key (default: ~/.ssh/id_ed25519, then ~/.ssh/id_rsa)")
@click.pass_obj
@handle_errors
def server_add(
    state: CliState,
    name: str,
    host: str,
    port: int,
    username: str,
    private_key_path: Optional[str],
) -> None:
    """Add an existing server to the inventory.

    Connects to the server and checks its distribution and privileges
    before storing it.

    Examples:
        deployer server add --name web1 --host 203.0.113.10

        deployer server add --name db1 --host db.example.com --username admin
    """
    if state.servers.find_by_name(name):
        raise click.ClickException(f"Server '{name}' already exists")
    existing = state.servers.find_by_host(host)
    if existing:
        raise click.ClickException(f"Host {host} is already registered as '{existing.name}'")

    target = ServerTarget(
        name=name,
        host=host,
        port=port,
        username=username,
        private_key_path=private_key_path,
    )
    target, info = gather_facts(state, target)
    require_managed(info)

    state.servers.create(target)
    click.echo(f"Server '{name}' added ({info.display_name}, {info.permissions})")


@server.command("list")
@click.option("--format", "-f", "output_format", type=click.Choice(["text", "json"]),
              default="text", help="Output format")
@click.pass_obj
@handle_errors
def server_list(state: CliState, output_format: str) -> None:
    """List servers in the inventory."""
    servers = state.servers.all()

    if output_format == "json":
        click.echo(json.dumps([s.to_dict() for s in servers], indent=2))
        return

    if not servers:
        click.echo("No servers in inventory")
        return
    for s in servers:
        provider = f" [{s.provider} {s.provider_resource_id}]" if s.is_provisioned else ""
        click.echo(f"  {s.name}: {s.username}@{s.address}{provider}")


@server.command("info")
@click.option("--server", "server_name", default=None, help="Server name")
@click.option("--format", "-f", "output_format", type=click.Choice(["text", "json"]),
              default="text", help="Output format")
@click.pass_obj
@handle_errors
def server_info(state: CliState, server_name: Optional[str], output_format: str) -> None:
    """Show distribution, privileges, hardware and listening ports."""
    target = select_server(state, server_name)
    target, info = gather_facts(state, target)

    if output_format == "json":
        click.echo(json.dumps({"server": target.name, **info.as_facts()}, indent=2))
        return
    click.echo(format_server_info(target, info))


@server.command("firewall")
@click.option("--server", "server_name", default=None, help="Server name")
@click.option("--allow", "allow", type=click.IntRange(1, 65535), multiple=True,
              help="TCP port to allow (repeatable, default: 80 and 443)")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_obj
@handle_errors
def server_firewall(
    state: CliState,
    server_name: Optional[str],
    allow: tuple[int, ...],
    yes: bool,
) -> None:
    """Enable UFW allowing only the given TCP ports.

    The SSH port is always allowed so the server stays reachable.

    Examples:
        deployer server firewall --server web1

        deployer server firewall --server web1 --allow 80 --allow 443 --allow 8080
    """
    target = select_server(state, server_name)
    target, info = gather_facts(state, target)
    require_managed(info)

    ports = firewall_ports(target.port, list(allow or DEFAULT_FIREWALL_PORTS))
    blocked = {p: proc for p, proc in info.ports.items() if p not in ports}

    click.echo(f"Allowing TCP ports on {target.name}: {', '.join(map(str, ports))}")
    for port, process in blocked.items():
        click.echo(f"  Warning: port {port} ({process}) is listening and will be blocked")
    if not yes:
        click.confirm("Apply firewall rules?", abort=True)

    run_playbook(
        state,
        target,
        PlaybookRequest(
            "server-firewall",
            f"Checking ufw on {target.name}",
            variables={"DEPLOYER_MODE": "detect"},
            timeout=state.config.playbook_timeout,
        ),
    )
    result = run_playbook(
        state,
        target,
        PlaybookRequest(
            "server-firewall",
            f"Applying firewall rules on {target.name}",
            variables={"DEPLOYER_MODE": "apply", "DEPLOYER_PORTS": ",".join(map(str, ports))},
            timeout=state.config.playbook_timeout,
        ),
    )
    firewall = FirewallResult.from_result(result)
    click.echo(f"Firewall enabled with {firewall.rules_applied} rule(s)")


@server.command("run")
@click.option("--server", "server_name", default=None, help="Server name")
@click.option("--playbook", "-p", "playbook_name", required=True, help="Playbook to run")
@click.option("--var", "variables", multiple=True, help="Variable as KEY=VALUE (repeatable)")
@click.option("--stream/--capture", default=False,
              help="Stream output live, or only show it on failure (default)")
@click.option("--timeout", "-t", type=float, default=None,
              help="Playbook timeout in seconds (default: $DEPLOYER_PLAYBOOK_TIMEOUT or 300)")
@click.option("--format", "-f", "output_format", type=click.Choice(["yaml", "json"]),
              default="yaml", help="Result output format")
@click.pass_obj
@handle_errors
def server_run(
    state: CliState,
    server_name: Optional[str],
    playbook_name: str,
    variables: tuple[str, ...],
    stream: bool,
    timeout: Optional[float],
    output_format: str,
) -> None:
    """Run any playbook and print its structured result.

    Examples:
        deployer server run --server web1 -p server-info

        deployer server run --server web1 -p server-firewall \\
            --var DEPLOYER_MODE=apply --var DEPLOYER_PORTS=22,80,443
    """
    try:
        explicit = parse_vars(variables)
    except ValueError as e:
        raise click.ClickException(str(e))

    target = select_server(state, server_name)
    if playbook_name != "server-info":
        target, _ = gather_facts(state, target)

    result = run_playbook(
        state,
        target,
        PlaybookRequest(
            playbook_name,
            f"Running {playbook_name} on {target.name}",
            variables=explicit,
            mode=ExecutionMode.STREAM if stream else ExecutionMode.CAPTURE,
            timeout=timeout or state.config.playbook_timeout,
        ),
    )
    if output_format == "json":
        click.echo(json.dumps(result, indent=2, default=str))
    else:
        click.echo(yaml.safe_dump(result, default_flow_style=False, sort_keys=False).rstrip())


@server.command("install-php")
@click.option("--server", "server_name", default=None, help="Server name")
@click.option("--php-version", default="8.3", help="PHP version to install")
@click.pass_obj
@handle_errors
def server_install_php(state: CliState, server_name: Optional[str], php_version: str) -> None:
    """Install PHP-FPM and common extensions."""
    target = select_server(state, server_name)
    target, info = gather_facts(state, target)
    require_managed(info)

    result = run_playbook(
        state,
        target,
        PlaybookRequest(
            "php-install",
            f"Installing PHP {php_version} on {target.name}",
            variables={"DEPLOYER_PHP_VERSION": php_version},
            mode=ExecutionMode.STREAM,
            timeout=max(PHP_INSTALL_TIMEOUT, state.config.playbook_timeout),
        ),
    )
    click.echo(f"PHP {result.get('php_version', php_version)} installed on {target.name}")


@server.command("delete")
@click.option("--server", "server_name", required=True, help="Server name")
@click.option("--destroy", is_flag=True, help="Also destroy the cloud resource")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_obj
@handle_errors
def server_delete(state: CliState, server_name: str, destroy: bool, yes: bool) -> None:
    """Remove a server (and its sites) from the inventory."""
    target = select_server(state, server_name)

    if destroy and not target.is_provisioned:
        raise click.ClickException(f"Server '{target.name}' was not provisioned by deployer")
    if not yes:
        action = "Destroy and remove" if destroy else "Remove"
        click.confirm(f"{action} server '{target.name}'?", abort=True)

    if destroy:
        assert target.provider_resource_id is not None
        provider = create_provider(state, target.provider or "")

        async def _destroy() -> None:
            async with provider:
                await provider.destroy(target.provider_resource_id)

        asyncio.run(_destroy())
        click.echo(f"Destroyed {target.provider} resource {target.provider_resource_id}")

    state.servers.delete(target.name)
    click.echo(f"Server '{target.name}' removed from inventory")


def create_provider(state: CliState, name: str) -> Any:
    """Create a cloud provider client by name."""
    if name == "digitalocean":
        from deployer.providers.digitalocean import DigitalOceanProvider

        return DigitalOceanProvider(state.config.digitalocean_token or "")
    if name == "aws":
        from deployer.providers.aws import AwsProvider

        return AwsProvider(region=state.config.aws_region, profile=state.config.aws_profile)
    raise click.ClickException(f"Unknown provider: {name}")


def provision(state: CliState, provider: Any, request: ProvisionRequest) -> ServerTarget:
    """Run the provisioning saga and report how it ended."""
    if state.servers.find_by_name(request.name):
        raise click.ClickException(f"Server '{request.name}' already exists")

    # Verification is retried while the server boots, so its runs stay silent
    saga = ProvisioningSaga(provider, state.servers, runner=state.runner(NullDisplay()))

    async def _run() -> ServerTarget:
        async with provider:
            return await saga.run(request)

    try:
        target = asyncio.run(_run())
    except DeployerError as e:
        if saga.state is SagaState.ROLLED_BACK:
            click.echo(f"Rolled back: {provider.name} resource {saga.result.resource_id}", err=True)
        raise click.ClickException(e.format_text()) from e

    click.echo(f"Server '{target.name}' provisioned at {target.host}")
    if not saga.result.reachable:
        click.echo(
            "  Warning: server did not answer over SSH yet. "
            f"Check it later with 'deployer server info --server {target.name}'"
        )
    return target


@server.group("provision")
def server_provision() -> None:
    """Provision a new cloud server."""
    pass


@server_provision.command("digitalocean")
@click.option("--name", required=True, help="Droplet and inventory name")
@click.option("--region", required=True, help="Region slug (e.g., nyc3)")
@click.option("--size", required=True, help="Size slug (e.g., s-1vcpu-1gb)")
@click.option("--image", default="ubuntu-24-04-x64", help="Image slug")
@click.option("--ssh-key", "ssh_keys", multiple=True, required=True,
              help="SSH key id or fingerprint registered with DigitalOcean (repeatable)")
@click.option("--private-key-path", default=None, help="Matching local private key")
@click.option("--backups", is_flag=True, help="Enable automated backups")
@click.option("--ipv6", is_flag=True, help="Enable IPv6")
@click.option("--monitoring", is_flag=True, help="Install the monitoring agent")
@click.option("--vpc-uuid", default=None, help="VPC to place the droplet in")
@click.pass_obj
@handle_errors
def provision_digitalocean(
    state: CliState,
    name: str,
    region: str,
    size: str,
    image: str,
    ssh_keys: tuple[str, ...],
    private_key_path: Optional[str],
    backups: bool,
    ipv6: bool,
    monitoring: bool,
    vpc_uuid: Optional[str],
) -> None:
    """Create a droplet and add it to the inventory.

    If any step after the droplet is created fails, the droplet is
    destroyed again.

    Examples:
        deployer server provision digitalocean --name web1 --region nyc3 \\
            --size s-1vcpu-1gb --ssh-key 12345678
    """
    from deployer.providers.digitalocean import DropletSpec

    spec = DropletSpec(
        name=name,
        region=region,
        size=size,
        image=image,
        ssh_keys=[int(k) if k.isdigit() else k for k in ssh_keys],
        backups=backups,
        ipv6=ipv6,
        monitoring=monitoring,
        vpc_uuid=vpc_uuid,
    )
    provider = create_provider(state, "digitalocean")
    provision(
        state,
        provider,
        ProvisionRequest(name=name, spec=spec, username="root", private_key_path=private_key_path),
    )


@server_provision.command("aws")
@click.option("--name", required=True, help="Name tag and inventory name")
@click.option("--image-id", required=True, help="AMI id")
@click.option("--instance-type", default="t3.small", help="Instance type")
@click.option("--key-name", required=True, help="EC2 key pair name")
@click.option("--subnet-id", default=None, help="Subnet to launch into")
@click.option("--security-group", "security_groups", multiple=True,
              help="Security group id (repeatable)")
@click.option("--volume-size", type=int, default=None, help="Root volume size in GiB")
@click.option("--username", default=None, help="SSH user (default: derived from the AMI)")
@click.option("--private-key-path", default=None, help="Private key for the key pair")
@click.pass_obj
@handle_errors
def provision_aws(
    state: CliState,
    name: str,
    image_id: str,
    instance_type: str,
    key_name: str,
    subnet_id: Optional[str],
    security_groups: tuple[str, ...],
    volume_size: Optional[int],
    username: Optional[str],
    private_key_path: Optional[str],
) -> None:
    """Launch an EC2 instance and add it to the inventory.

    If any step after the instance is launched fails, the instance is
    terminated again.
    """
    from deployer.providers.aws import InstanceSpec

    spec = InstanceSpec(
        name=name,
        image_id=image_id,
        instance_type=instance_type,
        key_name=key_name,
        subnet_id=subnet_id,
        security_group_ids=list(security_groups),
        volume_size=volume_size,
    )
    provider = create_provider(state, "aws")
    if username is None:
        username = asyncio.run(provider.image_username(image_id))
    provision(
        state,
        provider,
        ProvisionRequest(
            name=name, spec=spec, username=username, private_key_path=private_key_path
        ),
    )


@cli.group()
def site() -> None:
    """Site management commands."""
    pass


@site.command("add")
@click.option("--domain", required=True, help="Site domain")
@click.option("--server", "server_name", required=True, help="Server hosting the site")
@click.option("--php-version", default="8.3", help="PHP version")
@click.option("--repo", default=None, help="Git repository URL")
@click.option("--branch", default="main", help="Git branch")
@click.pass_obj
@handle_errors
def site_add(
    state: CliState,
    domain: str,
    server_name: str,
    php_version: str,
    repo: Optional[str],
    branch: str,
) -> None:
    """Add a site to the inventory."""
    state.sites.create(
        SiteContext(
            domain=domain,
            server=server_name,
            php_version=php_version,
            repo=repo,
            branch=branch,
        )
    )
    click.echo(f"Site '{domain}' added on {server_name}")


@site.command("list")
@click.pass_obj
@handle_errors
def site_list(state: CliState) -> None:
    """List sites in the inventory."""
    sites = state.sites.all()
    if not sites:
        click.echo("No sites in inventory")
        return
    for s in sites:
        click.echo(f"  {s.domain}: {s.server} (PHP {s.php_version}, {len(s.crons)} cron job(s))")


@site.command("cron-sync")
@click.option("--domain", required=True, help="Site domain")
@click.option("--cron", "crons", multiple=True,
              help="Cron job as 'SCHEDULE|SCRIPT' (repeatable); replaces the stored jobs")
@click.pass_obj
@handle_errors
def site_cron_sync(state: CliState, domain: str, crons: tuple[str, ...]) -> None:
    """Install the site's cron jobs on its server.

    Examples:
        deployer site cron-sync --domain example.com --cron "*/5 * * * *|scripts/cleanup.sh"
    """
    site_ctx = state.sites.find_by_domain(domain)
    if site_ctx is None:
        raise click.ClickException(f"Site '{domain}' not found")

    if crons:
        try:
            site_ctx.crons = [parse_cron(c) for c in crons]
        except ValueError as e:
            raise click.ClickException(str(e))
        state.sites.update(site_ctx)

    target = select_server(state, site_ctx.server)
    target, _ = gather_facts(state, target)

    result = run_playbook(
        state,
        target,
        PlaybookRequest(
            "site-cron-sync",
            f"Syncing cron jobs for {domain}",
            timeout=state.config.playbook_timeout,
        ),
        site=site_ctx,
    )
    click.echo(f"Synced {result.get('crons_synced', len(site_ctx.crons))} cron job(s) for {domain}")


@site.command("supervisor-sync")
@click.option("--domain", required=True, help="Site domain")
@click.option("--program", "programs", multiple=True,
              help="Program as 'PROGRAM|SCRIPT' (repeatable); replaces the stored programs")
@click.option("--numprocs", type=click.IntRange(min=1), default=1, show_default=True,
              help="Processes per program given with --program")
@click.option("--stopwaitsecs", type=click.IntRange(min=0), default=3600, show_default=True,
              help="Seconds to wait for a graceful stop")
@click.pass_obj
@handle_errors
def site_supervisor_sync(
    state: CliState,
    domain: str,
    programs: tuple[str, ...],
    numprocs: int,
    stopwaitsecs: int,
) -> None:
    """Install the site's supervisor programs on its server.

    Programs no longer listed for the site are removed from the server.

    Examples:
        deployer site supervisor-sync --domain example.com --program "queue|scripts/queue.sh"
    """
    site_ctx = state.sites.find_by_domain(domain)
    if site_ctx is None:
        raise click.ClickException(f"Site '{domain}' not found")

    if programs:
        try:
            site_ctx.supervisors = [
                parse_supervisor(p, numprocs=numprocs, stopwaitsecs=stopwaitsecs)
                for p in programs
            ]
        except ValueError as e:
            raise click.ClickException(str(e))
        state.sites.update(site_ctx)

    target = select_server(state, site_ctx.server)
    target, _ = gather_facts(state, target)

    result = run_playbook(
        state,
        target,
        PlaybookRequest(
            "site-supervisor-sync",
            f"Syncing supervisor programs for {domain}",
            timeout=state.config.playbook_timeout,
        ),
        site=site_ctx,
    )
    synced = result.get("supervisors_synced", len(site_ctx.supervisors))
    click.echo(f"Synced {synced} supervisor program(s) for {domain}")


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
