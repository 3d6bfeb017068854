from typing import List
from rich.console import Console
from rich.table import Table
from portico.runtime.process import ProcessHandle, ProcessState
from portico.utils.diagnostics import PassDiagnostic

# Create a stderr console for system messages
error_console = Console(stderr=True)
console = Console()

class OutputFormatter:
    """
    Handles output formatting for the CLI.
    System messages go to stderr, status data to stdout.
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[PORTICO]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]{prefix} {message}[/{style}]")

    @staticmethod
    def print_process(handle: ProcessHandle) -> None:
        """Print the resolved managed process handle."""
        color = "green" if handle.state == ProcessState.RUNNING else "red"

        table = Table(title="HAProxy Process", header_style="bold")
        table.add_column("State", style="bold")
        table.add_column("PID")
        table.add_column("PID Record")
        table.add_column("Detail")
        table.add_row(
            f"[{color}]{handle.state.value.upper()}[/{color}]",
            str(handle.pid) if handle.pid is not None else "-",
            handle.pid_file,
            handle.reason,
        )
        console.print(table)

    @staticmethod
    def print_diagnostics(diagnostics: List[PassDiagnostic]) -> None:
        """
        Prints a table of failed translation passes.
        """
        if not diagnostics:
            return

        table = Table(title="Sync Diagnostics", border_style="red", header_style="bold red")
        table.add_column("Pass", style="bold")
        table.add_column("Error")
        table.add_column("Message")
        table.add_column("Resource")

        for diag in diagnostics:
            resource = "-"
            if diag.resource:
                resource = f"{diag.namespace}/{diag.resource}" if diag.namespace else diag.resource

            table.add_row(diag.pass_name, diag.error_class, diag.message, resource)

        error_console.print(table)
        error_console.print() # spacing
