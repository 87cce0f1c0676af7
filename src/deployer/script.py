"""Remote script composition.

A playbook is shipped as a single shell command: the variable assignments,
then `bash` reading a quoted heredoc that holds the helper library followed
by the playbook body. The quoted delimiter stops the remote shell from
expanding anything inside the script, and the assignments only live in the
environment of that one bash process.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import PlaybookNotFound
from .variables import format_env_prefix

logger = logging.getLogger(__name__)

HEREDOC_DELIMITER = "DEPLOYER_SCRIPT_EOF"
HELPERS_NAME = "helpers"
BUNDLED_PLAYBOOK_DIR = Path(__file__).parent / "playbooks"

_PLAYBOOK_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


@dataclass(frozen=True)
class ScriptPayload:
    """Everything needed to run one playbook remotely.

    Attributes:
        body: Playbook script text
        helpers: Shared helper library prepended to the body
        variables: Encoded variables exported for the script

    Example:
        >>> payload = ScriptPayload(body="echo hi", helpers="", variables={"A": "1"})
        >>> print(payload.render())
        A=1 bash <<'DEPLOYER_SCRIPT_EOF'
        <BLANKLINE>
        <BLANKLINE>
        echo hi
        DEPLOYER_SCRIPT_EOF
    """

    body: str
    helpers: str = ""
    variables: dict[str, str] = field(default_factory=dict)

    def compose(self) -> str:
        """Join the helper library and the playbook body."""
        return f"{self.helpers}\n\n{self.body}"

    def render(self) -> str:
        """Render the full remote command line.

        Raises:
            ValueError: If the script contains the heredoc delimiter on a
                line of its own, which would end the heredoc early
        """
        script = self.compose()
        if HEREDOC_DELIMITER in script.splitlines():
            raise ValueError(f"Script must not contain a line '{HEREDOC_DELIMITER}'")

        prefix = format_env_prefix(self.variables)
        invocation = f"{prefix} bash" if prefix else "bash"
        return f"{invocation} <<'{HEREDOC_DELIMITER}'\n{script}\n{HEREDOC_DELIMITER}"


class PlaybookLibrary:
    """Loads playbook scripts by name.

    Scripts are `<name>.sh` files in a directory, the bundled playbooks by
    default. The shared helper library is `helpers.sh` in the same place.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        self.directory = Path(directory) if directory else BUNDLED_PLAYBOOK_DIR

    def path_for(self, name: str) -> Path:
        """Resolve a playbook name to its script path.

        Raises:
            PlaybookNotFound: If the name is invalid or no script exists
        """
        if not _PLAYBOOK_NAME_RE.match(name):
            raise PlaybookNotFound(f"Invalid playbook name: {name!r}")
        path = self.directory / f"{name}.sh"
        if not path.is_file():
            raise PlaybookNotFound(f"Playbook '{name}' not found in {self.directory}")
        return path

    def load(self, name: str) -> str:
        """Read a playbook script."""
        path = self.path_for(name)
        logger.debug(f"Loading playbook {path}")
        return path.read_text()

    def helpers(self) -> str:
        """Read the shared helper library."""
        return self.load(HELPERS_NAME)

    def names(self) -> list[str]:
        """List available playbooks, excluding the helper library."""
        if not self.directory.is_dir():
            return []
        return sorted(
            path.stem
            for path in self.directory.glob("*.sh")
            if path.stem != HELPERS_NAME
        )

    def payload(self, name: str, variables: dict[str, str]) -> ScriptPayload:
        """Build the payload for a playbook with the helper library injected."""
        return ScriptPayload(body=self.load(name), helpers=self.helpers(), variables=variables)
