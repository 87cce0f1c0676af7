"""Local inventory of servers and sites.

The inventory is a single YAML file (deployer.yml by default):

    servers:
      - name: web1
        host: 203.0.113.10
        port: 22
        username: root
        privateKeyPath: ~/.ssh/id_ed25519
        provider: digitalocean
        dropletId: "123456789"
    sites:
      - domain: example.com
        server: web1
        phpVersion: "8.3"

Only the CLI process reads and writes it, one invocation at a time.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from .exceptions import InventoryError
from .types import ServerTarget, SiteContext

logger = logging.getLogger(__name__)

DEFAULT_INVENTORY_FILE = "deployer.yml"


class InventoryFile:
    """Dot-path access to the YAML inventory document.

    Every `get` and `set` reads the file again, so repositories sharing a
    path (or an InventoryFile) always write on top of the latest contents.

    Example:
        >>> inventory = InventoryFile("deployer.yml")
        >>> inventory.get("servers", [])
        []
        >>> inventory.set("servers", [{"name": "web1", "host": "203.0.113.10"}])
    """

    def __init__(self, path: str | Path = DEFAULT_INVENTORY_FILE) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        """Read the document, treating a missing file as empty.

        Raises:
            InventoryError: If the file is not valid YAML or not a mapping
        """
        if not self.path.exists():
            return {}

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InventoryError(f"Invalid YAML in inventory {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise InventoryError(f"Inventory {self.path} must be a YAML mapping")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dot-separated path (e.g., "servers")."""
        node: Any = self.load()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a value by dot-separated path and write the file."""
        data = self.load()
        parts = key.split(".")
        node = data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
        self.save(data)

    def save(self, data: dict[str, Any]) -> None:
        """Write a whole document to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        logger.debug(f"Wrote inventory {self.path}")


class ServerRepository:
    """Servers stored in the inventory, unique by name and by host."""

    def __init__(self, inventory: InventoryFile) -> None:
        self.inventory = inventory

    def _records(self) -> list[dict[str, Any]]:
        records = self.inventory.get("servers", []) or []
        if not isinstance(records, list):
            raise InventoryError(f"'servers' in {self.inventory.path} must be a list")
        return records

    def all(self) -> list[ServerTarget]:
        """All servers in inventory order.

        Raises:
            InventoryError: If a server entry is invalid
        """
        servers = []
        for record in self._records():
            try:
                servers.append(ServerTarget.from_dict(record))
            except (TypeError, ValueError) as e:
                raise InventoryError(
                    f"Invalid server entry in {self.inventory.path}: {e}"
                ) from e
        return servers

    def find_by_name(self, name: str) -> ServerTarget | None:
        return next((s for s in self.all() if s.name == name), None)

    def find_by_host(self, host: str) -> ServerTarget | None:
        return next((s for s in self.all() if s.host == host), None)

    def create(self, target: ServerTarget) -> ServerTarget:
        """Add a server.

        Raises:
            InventoryError: If the name or host is already in the inventory
        """
        if self.find_by_name(target.name) is not None:
            raise InventoryError(f"Server '{target.name}' already exists")
        existing = self.find_by_host(target.host)
        if existing is not None:
            raise InventoryError(
                f"Host {target.host} is already registered as '{existing.name}'"
            )

        self.inventory.set("servers", self._records() + [target.to_dict()])
        logger.info(f"Added server {target.name} ({target.host}) to inventory")
        return target

    def delete(self, name: str) -> bool:
        """Remove a server and any sites hosted on it.

        Returns:
            True if the server existed
        """
        records = self._records()
        remaining = [r for r in records if r.get("name") != name]
        if len(remaining) == len(records):
            return False

        self.inventory.set("servers", remaining)
        sites = SiteRepository(self.inventory)
        for site in sites.for_server(name):
            sites.delete(site.domain)
        logger.info(f"Removed server {name} from inventory")
        return True


class SiteRepository:
    """Sites stored in the inventory, unique by domain."""

    def __init__(self, inventory: InventoryFile) -> None:
        self.inventory = inventory

    def _records(self) -> list[dict[str, Any]]:
        records = self.inventory.get("sites", []) or []
        if not isinstance(records, list):
            raise InventoryError(f"'sites' in {self.inventory.path} must be a list")
        return records

    def all(self) -> list[SiteContext]:
        sites = []
        for record in self._records():
            try:
                sites.append(SiteContext.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                raise InventoryError(
                    f"Invalid site entry in {self.inventory.path}: {e}"
                ) from e
        return sites

    def find_by_domain(self, domain: str) -> SiteContext | None:
        return next((s for s in self.all() if s.domain == domain), None)

    def for_server(self, server: str) -> list[SiteContext]:
        return [s for s in self.all() if s.server == server]

    def create(self, site: SiteContext) -> SiteContext:
        """Add a site.

        Raises:
            InventoryError: If the domain exists or the server is unknown
        """
        if self.find_by_domain(site.domain) is not None:
            raise InventoryError(f"Site '{site.domain}' already exists")
        if ServerRepository(self.inventory).find_by_name(site.server) is None:
            raise InventoryError(f"Server '{site.server}' not found")

        self.inventory.set("sites", self._records() + [site.to_dict()])
        logger.info(f"Added site {site.domain} on {site.server}")
        return site

    def update(self, site: SiteContext) -> SiteContext:
        """Replace an existing site's record.

        Raises:
            InventoryError: If the site does not exist
        """
        records = self._records()
        for index, record in enumerate(records):
            if record.get("domain") == site.domain:
                records[index] = site.to_dict()
                self.inventory.set("sites", records)
                return site
        raise InventoryError(f"Site '{site.domain}' not found")

    def delete(self, domain: str) -> bool:
        records = self._records()
        remaining = [r for r in records if r.get("domain") != domain]
        if len(remaining) == len(records):
            return False
        self.inventory.set("sites", remaining)
        return True
