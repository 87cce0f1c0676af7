"""Private key resolution for SSH connections."""

import logging
from pathlib import Path
from typing import Sequence

import asyncssh

from .exceptions import KeyNotFound

logger = logging.getLogger(__name__)

DEFAULT_KEY_PATHS: tuple[str, ...] = ("~/.ssh/id_ed25519", "~/.ssh/id_rsa")


def candidate_key_paths(
    explicit: str | None = None,
    fallbacks: Sequence[str] = DEFAULT_KEY_PATHS,
) -> list[Path]:
    """Build the ordered list of key paths to try.

    Args:
        explicit: Key path configured on the server, if any
        fallbacks: Conventional default locations, tried in order

    Returns:
        Expanded paths, explicit first, without duplicates
    """
    raw = ([explicit] if explicit else []) + list(fallbacks)
    paths: list[Path] = []
    for item in raw:
        path = Path(item).expanduser()
        if path not in paths:
            paths.append(path)
    return paths


def resolve_private_key(
    explicit: str | None = None,
    fallbacks: Sequence[str] = DEFAULT_KEY_PATHS,
    host: str | None = None,
) -> tuple[Path, asyncssh.SSHKey]:
    """Find the first key that exists and parses.

    Resolution is checked before any connection is attempted, so a missing
    key never costs a network round trip.

    Args:
        explicit: Key path configured on the server, if any
        fallbacks: Conventional default locations, tried in order
        host: Server name, for error reporting

    Returns:
        Tuple of (path, parsed key)

    Raises:
        KeyNotFound: If no candidate exists and parses

    Example:
        >>> path, key = resolve_private_key("~/.ssh/deploy_ed25519")
    """
    candidates = candidate_key_paths(explicit, fallbacks)

    for path in candidates:
        if not path.is_file():
            if explicit and path == Path(explicit).expanduser():
                logger.warning(f"Configured private key {path} does not exist, trying defaults")
            continue
        try:
            key = asyncssh.read_private_key(str(path))
        except (OSError, asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
            logger.debug(f"Skipping unusable key {path}: {e}")
            continue
        logger.debug(f"Using private key {path}")
        return path, key

    raise KeyNotFound([str(p) for p in candidates], host=host)
