"""Interactive questions asked by the store's workflows.

These are the only places the core blocks on user input. Each one is
injectable where it is used, so tests and non-interactive callers can supply
answers directly.
"""

from rich.console import Console
from rich.prompt import Confirm, Prompt

console = Console()

OVERRIDE_CHOICES = {
    "0": "Override local files with the remote state",
    "1": "Override remote files with the local state",
    "2": "Exit",
}


def confirm_setup() -> bool:
    return Confirm.ask(
        "Looks like you never used gittt, should it be set up?", default=True
    )


def ask_git_url() -> str:
    return Prompt.ask("Git repository URL for your gittt records").strip()


def ask_override() -> int:
    """Asks how to recover from a pull that could not be applied."""
    console.print(
        "[bold yellow]WARNING:[/bold yellow] Remote repo is not empty, "
        "override local changes?"
    )
    for value, label in OVERRIDE_CHOICES.items():
        console.print(f"   [{value}] {label}")
    choice = Prompt.ask("   Choice", choices=list(OVERRIDE_CHOICES), default="2")
    return int(choice)


def ask_commit_message() -> str:
    return Prompt.ask("Git Commit Message", default="").strip()


def confirm_init() -> bool:
    return Confirm.ask(
        "This will reset the project if it is already initialized, are you sure?",
        default=False,
    )


def confirm_ticket_number(ticket: str) -> bool:
    return Confirm.ask(
        f"Ticket number ({ticket}) found in branch name, "
        "should it be added to the commit message?",
        default=True,
    )
