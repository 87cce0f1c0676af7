"""Console rendering of playbook runs.

Uses Rich for the spinner shown while a captured playbook runs, and for
rendering failures. Streamed output is written through untouched so remote
progress bars and partial lines render as the remote side printed them.
"""

from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

from .exceptions import MalformedResult
from .types import PlaybookOutcome


class PlaybookDisplay:
    """Renders playbook progress and failures to the terminal.

    Example:
        display = PlaybookDisplay()
        with display.status("Retrieving server information"):
            result = await host.run(command)

        display.stream_start("Installing PHP 8.3")
        result = await host.run_streaming(command, on_output=display.write)
        display.stream_end()
    """

    def __init__(self, console: Console | None = None, quiet: bool = False) -> None:
        """Initialize the display.

        Args:
            console: Rich Console to use (creates one on stderr if None)
            quiet: Suppress spinners and streamed output, keep failures
        """
        self.console = console or Console(stderr=True)
        self.quiet = quiet

    @contextmanager
    def status(self, description: str) -> Generator[None, None, None]:
        """Show a spinner while a captured playbook runs."""
        if self.quiet or not self.console.is_terminal:
            yield
            return
        with self.console.status(f"[bold blue]{escape(description)}"):
            yield

    def stream_start(self, description: str) -> None:
        if not self.quiet:
            self.console.print(f"[bold blue]$> {escape(description)}")

    def write(self, chunk: str) -> None:
        """Write a chunk of streamed output as-is."""
        if self.quiet:
            return
        self.console.file.write(chunk)
        self.console.file.flush()

    def stream_end(self) -> None:
        if not self.quiet:
            self.console.print(Rule(style="dim"))

    def _show_block(self, title: str, text: str) -> None:
        if text and text.strip():
            self.console.print(Rule(title, style="dim"))
            self.console.print(text.rstrip("\n"), markup=False, highlight=False)
            self.console.print(Rule(style="dim"))

    def show_output(self, output: str) -> None:
        """Show captured output of a failed playbook."""
        self._show_block("remote output", output)

    def show_failure(self, outcome: PlaybookOutcome, output_shown: bool = False) -> None:
        """Show what the operator needs to diagnose a failed script.

        The classified error is reported by the caller. This prints the raw
        material behind it: the captured output, unless it was already
        streamed, and the result file content when it could not be parsed.
        """
        if not output_shown:
            self.show_output(outcome.output)
        if isinstance(outcome.error, MalformedResult):
            self._show_block("result file", outcome.error.raw)


class NullDisplay(PlaybookDisplay):
    """Display that discards everything."""

    def __init__(self) -> None:
        super().__init__(console=Console(quiet=True), quiet=True)

    def show_output(self, output: str) -> None:
        pass

    def show_failure(self, outcome: PlaybookOutcome, output_shown: bool = False) -> None:
        pass
