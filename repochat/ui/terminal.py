"""Rich-based terminal UI for the repository assistant."""

from typing import Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..core.chunk import ChatResponse, SourceReference


class TerminalUI:
    """Rich-based terminal interface for ingestion and chat."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize the terminal UI.

        Args:
            console: Rich console to use. Creates new one if not provided.
        """
        self.console = console or Console()

    def show_registered(self, corpus_id: str, summary: str, chunk_count: int) -> None:
        """Display the result of ingesting a repository.

        Args:
            corpus_id: Corpus id assigned to the repository.
            summary: Short repository summary.
            chunk_count: Number of chunks indexed.
        """
        content = f"[bold]{escape(corpus_id)}[/bold] ({chunk_count} chunks)\n\n{escape(summary)}"
        self.console.print(Panel(content, title="Repository", border_style="green"))

    def show_answer(self, response: ChatResponse) -> None:
        """Display an answer followed by its sources.

        Args:
            response: The assistant's reply.
        """
        self.console.print(Panel(Markdown(response.answer), title="Answer", border_style="cyan"))
        self.show_sources(response.sources)

    def show_sources(self, sources: list[SourceReference]) -> None:
        """Display cited sources as a table.

        Args:
            sources: Source references in rank order.
        """
        if not sources:
            self.console.print("[dim]No sources retrieved[/dim]")
            return

        table = Table(title="Sources", show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("File", style="cyan")
        table.add_column("Lines", justify="right")

        for index, source in enumerate(sources, start=1):
            table.add_row(str(index), source.file_path, f"{source.start_line}-{source.end_line}")

        self.console.print(table)

    def show_error(self, error: str) -> None:
        """Display an error in a red panel; the text is not parsed as markup."""
        self.console.print(Panel(escape(error), title="Error", border_style="red", expand=False))

    def show_info(self, info: str) -> None:
        """Display a status line in a dim panel."""
        self.console.print(Panel(info, border_style="dim"))

    def show_markdown(self, content: str) -> None:
        """Render help text or other markdown."""
        self.console.print(Markdown(content))

    def prompt(self, label: str = "> ") -> str:
        """Read one line of user input."""
        return self.console.input(f"\n{label}").strip()
