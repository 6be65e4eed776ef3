"""
FamConomy Onboarding - CLI Entry Point.

Usage:
    onboarding chat --user-id U1              Talk to the onboarding assistant
    onboarding extract-members "my wife Sarah"
    onboarding extract-rooms "kitchen and garage" --member Jake:Son
    onboarding serve --port 8000              Run the onboarding API
"""

import asyncio

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table

from .config import configure_logging, get_settings
from .extraction import extract_members, extract_rooms
from .normalize import normalize_role
from .state import Member, Sender

app = typer.Typer(
    name="onboarding",
    help="FamConomy guided onboarding: chat, extraction helpers and the API server.",
    add_completion=False,
)
console = Console()


@app.command()
def chat(
    user_id: str = typer.Option(..., "--user-id", "-u", help="User id sent to the backend"),
    family_id: int | None = typer.Option(None, "--family-id", "-f", help="Existing family id, if any"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    """Start an interactive onboarding conversation."""
    configure_logging("DEBUG" if verbose else "WARNING")

    console.print(
        Panel.fit(
            "[bold green]FamConomy Onboarding[/bold green]\n"
            "Set up your family name, members and rooms.\n\n"
            "[dim]Type 'exit' or 'quit' to end the session.[/dim]\n"
            "[dim]Type 'state' to see what has been captured so far.[/dim]",
            title="Welcome",
            border_style="green",
        )
    )

    try:
        asyncio.run(_chat_loop(user_id, family_id))
    except KeyboardInterrupt:
        console.print("\n\n[dim]Session interrupted. Goodbye![/dim]")


async def _chat_loop(user_id: str, family_id: int | None) -> None:
    from .engine import OnboardingEngine
    from .persistence import OnboardingAPIClient, create_http_client
    from .streaming import AssistantStreamClient

    settings = get_settings()
    async with create_http_client(settings) as client:
        engine = OnboardingEngine(
            user_id=user_id,
            family_id=family_id,
            assistant=AssistantStreamClient(client, settings=settings),
            api=OnboardingAPIClient(client, settings=settings),
            settings=settings,
        )
        await engine.hydrate()

        for message in engine.state.messages:
            _print_message(message.sender, message.text)

        while True:
            user_input = console.input("\n[bold blue]You:[/bold blue] ").strip()

            if user_input.lower() in ("exit", "quit", "q"):
                console.print("\n[dim]Goodbye![/dim]")
                break
            if not user_input:
                continue
            if user_input.lower() == "state":
                _show_state(engine)
                continue

            seen = len(engine.state.messages)
            with Live(Spinner("dots", text="Thinking..."), console=console, transient=True):
                await engine.send_user_message(user_input)

            messages = engine.state.messages
            new_messages = messages[seen:] if len(messages) > seen else messages
            for message in new_messages:
                if message.sender == Sender.ASSISTANT:
                    _print_message(message.sender, message.text)

            if engine.state.error:
                console.print(f"[red]{engine.state.error}[/red]")


def _print_message(sender: Sender, text: str) -> None:
    if sender == Sender.ASSISTANT:
        console.print(f"\n[bold green]LinZ:[/bold green] {text}")
    else:
        console.print(f"\n[bold blue]You:[/bold blue] {text}")


def _show_state(engine) -> None:
    """Show the captured slots for debugging."""
    snapshot = engine.snapshot()
    console.print(f"\n[bold yellow]Step:[/bold yellow] {snapshot.current_step.value}")
    console.print(f"[bold]Family:[/bold] {snapshot.family_name or '[dim]-[/dim]'}")
    console.print(f"[bold]Members:[/bold] {len(snapshot.members)}")
    for member in snapshot.members:
        console.print(f"  • {member.name} ({member.role})")
    console.print(f"[bold]Rooms:[/bold] {', '.join(snapshot.rooms) or '[dim]-[/dim]'}")
    if snapshot.family_id is not None:
        console.print(f"[dim]Family id: {snapshot.family_id}[/dim]")


@app.command("extract-members")
def extract_members_command(
    text: str = typer.Argument(..., help="Free-text message to scan"),
) -> None:
    """Show the members the rule-based extractor finds in TEXT."""
    members = extract_members(text)
    if not members:
        console.print("[dim]No members found.[/dim]")
        return

    table = Table(title="Members")
    table.add_column("Name", style="bold")
    table.add_column("Role")
    for member in members:
        table.add_row(member.name, member.role)
    console.print(table)


@app.command("extract-rooms")
def extract_rooms_command(
    text: str = typer.Argument(..., help="Free-text message to scan"),
    member: list[str] = typer.Option([], "--member", "-m", help="Known member as NAME:ROLE (repeatable)"),
    room: list[str] = typer.Option([], "--room", "-r", help="Room already captured (repeatable)"),
) -> None:
    """Show the rooms the rule-based extractor finds in TEXT."""
    members = []
    for entry in member:
        name, _, role = entry.partition(":")
        if not name.strip():
            console.print(f"[red]Invalid member: {entry}. Use NAME:ROLE.[/red]")
            raise typer.Exit(1)
        members.append(Member(name=name.strip(), role=normalize_role(role)))

    rooms = extract_rooms(text, room, members)
    if not rooms:
        console.print("[dim]No rooms found.[/dim]")
        return
    for name in rooms:
        console.print(f"  • {name}")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the onboarding API server."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)

    console.print("\n[bold green]FamConomy Onboarding API[/bold green]")
    console.print(f"Starting server on http://localhost:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "onboarding.api:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
