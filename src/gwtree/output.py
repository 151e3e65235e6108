"""Step-by-step terminal transcript."""

from rich.console import Console
from rich.markup import escape

BANNER = """
╔═╗╦ ╦╔╦╗
║ ╦║║║ ║
╚═╝╚╩╝ ╩
"""

BAR = "│"
DIAMOND = "◆"
ELBOW = "└"


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


class Reporter:
    """Prints the framed, one-step-per-block output every command uses.

    Arguments are plain text; markup characters in paths and branch names
    are escaped before printing.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console(highlight=False)

    def banner(self) -> None:
        self.console.print(BANNER, style="cyan", markup=False)

    def intro(self, title: str, accent: str = "") -> None:
        text = f"┌  {escape(title)}"
        if accent:
            text += f" [cyan]{escape(accent)}[/cyan]"
        self.console.print(text)

    def info(self, message: str) -> None:
        self.console.print(BAR)
        self.console.print(f"[blue]●[/blue]  {escape(message)}")

    def step(self, name: str, detail: str = "", description: str = "",
             error: bool = False, color: str | None = None) -> None:
        """One completed (or failed) step: symbol, name, command, description."""
        color = color or ("red" if error else "green")
        head = f"{BAR}  [{color}]{DIAMOND}[/{color}]  [{color}]{escape(name)}[/{color}]"
        if detail:
            head += f"  [dim]{escape(detail)}[/dim]"
        self.console.print(BAR)
        self.console.print(head)
        if description:
            self.console.print(f"{BAR}  [dim]{ELBOW}[/dim]  [dim]{escape(description)}[/dim]")

    def bullet(self, text: str, note: str = "") -> None:
        line = f"{BAR}  [dim]•[/dim]  {escape(text)}"
        if note:
            line += f" [dim]{escape(note)}[/dim]"
        self.console.print(line)

    def heading(self, text: str, color: str = "yellow") -> None:
        self.console.print(BAR)
        self.console.print(f"{BAR}  [{color}]{escape(text)}[/{color}]")

    def done(self, message: str = "", label: str = "Done", color: str = "green") -> None:
        text = f"{ELBOW}  [{color}]{escape(label)}[/{color}]"
        if message:
            text += f"  {escape(message)}"
        self.console.print(BAR)
        self.console.print(text)
        self.console.print()

    def end(self, message: str) -> None:
        """Close the frame with a dim, neutral message."""
        self.console.print(BAR)
        self.console.print(f"{ELBOW}  [dim]{escape(message)}[/dim]")
        self.console.print()

    def cancel(self, message: str) -> None:
        self.console.print(f"{ELBOW}  [red]{escape(message)}[/red]")
        self.console.print()

    def hint(self, text: str) -> None:
        self.console.print(f"   [dim]{escape(text)}[/dim]")

    def message(self, text: str, dim: bool = False) -> None:
        self.console.print(f"[dim]{escape(text)}[/dim]" if dim else escape(text))
