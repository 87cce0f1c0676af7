"""Deployer - provision, configure and inspect Linux servers over SSH.

Every server operation is an idempotent shell playbook shipped to the
remote host over SSH. Playbooks receive their context as environment
variables and hand structured results back through a temporary YAML file.

Quick Start:
    from deployer import PlaybookRunner, PlaybookRequest, ServerTarget

    runner = PlaybookRunner()
    target = ServerTarget(name="web1", host="203.0.113.10")
    outcome = await runner.run(target, PlaybookRequest("server-info", "Inspecting server"))
"""

__version__ = "0.1.0"

from deployer.runner import PlaybookRunner
from deployer.types import ExecutionMode, PlaybookOutcome, PlaybookRequest, ServerTarget

__all__ = [
    "__version__",
    "ExecutionMode",
    "PlaybookOutcome",
    "PlaybookRequest",
    "PlaybookRunner",
    "ServerTarget",
]
