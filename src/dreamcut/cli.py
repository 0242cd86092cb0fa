"""Command-line interface using Typer."""

import json
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dreamcut import __version__
from dreamcut.logging import setup_logging

setup_logging(role="cli", level="WARNING")

app = typer.Typer(
    name="dreamcut",
    help="DreamCut - creative query analysis CLI",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"DreamCut v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """DreamCut - turn a prompt and media assets into a creative brief."""
    pass


def parse_asset(value: str):
    """Parse URL:TYPE into an asset descriptor."""
    from dreamcut.domain.enums import MediaType
    from dreamcut.domain.models import AssetDescriptor

    url, sep, media_type = value.rpartition(":")
    if not sep or not url:
        raise typer.BadParameter(f"Expected URL:TYPE, got {value!r}")
    try:
        return AssetDescriptor(url=url, type=MediaType(media_type.lower()))
    except ValueError:
        raise typer.BadParameter(f"Unknown asset type {media_type!r} (image, video, audio)")


@app.command()
def analyze(
    prompt: str = typer.Argument(..., help="Creative prompt"),
    asset: Optional[list[str]] = typer.Option(
        None, "--asset", "-a", help="Asset as URL:TYPE (repeatable)"
    ),
    intent: Optional[str] = typer.Option(None, "--intent", "-i", help="image, video, audio or mixed"),
    user: str = typer.Option("cli", "--user", "-u", help="User id"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Force a creative profile"),
    show_json: bool = typer.Option(False, "--json", help="Print the full payload as JSON"),
) -> None:
    """Run the pipeline in-process and stream its messages."""
    from dreamcut.config import get_settings
    from dreamcut.context import build_context
    from dreamcut.domain.enums import Intent, QueryStatus
    from dreamcut.realtime.memory import InMemoryNotifier
    from dreamcut.services.orchestrator import PipelineOrchestrator
    from dreamcut.stages.query_analysis import infer_intent
    from dreamcut.store.memory import InMemoryProgressStore
    from dreamcut.utils import run_async

    assets = [parse_asset(a) for a in asset or []]
    try:
        declared = Intent(intent.lower()) if intent else None
    except ValueError:
        raise typer.BadParameter(f"Unknown intent {intent!r}")

    notifier = InMemoryNotifier()
    context = build_context(
        get_settings(), store=InMemoryProgressStore(notifier), notifier=notifier
    )
    options: dict = {"intent_source": "user" if declared else "inferred"}
    if profile:
        options["profile"] = profile
    query_id = context.store.create_query(
        user, prompt, declared or infer_intent(prompt), assets, options
    )

    def on_message(event) -> None:
        record = event.record
        emoji = record.get("emoji") or "•"
        console.print(f"{emoji} {record.get('content', '')}")

    subscription = notifier.subscribe(query_id, on_new_message=on_message)
    console.print(f"[bold blue]Analyzing...[/bold blue] [dim]{query_id}[/dim]")
    try:
        record = run_async(PipelineOrchestrator(context).run(query_id))
    finally:
        subscription.unsubscribe()

    if record.status != QueryStatus.COMPLETED:
        console.print(f"[bold red]✗ Failed: {record.error_message}[/bold red]")
        raise typer.Exit(code=1)

    payload = record.payload or {}
    if show_json:
        console.print_json(json.dumps(payload, default=str))
        return

    summary = payload.get("summary", {})
    table = Table(title=summary.get("title", "Creative Brief"))
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Intent", summary.get("intent", ""))
    table.add_row("Alignment", f"{summary.get('alignment_score', 0):.2f}")
    table.add_row("Completeness", f"{summary.get('completeness_score', 0):.2f}")
    for bucket, count in summary.get("asset_utilization", {}).items():
        table.add_row(f"Assets ({bucket})", str(count))
    table.add_row("Gaps", str(summary.get("gaps", 0)))
    table.add_row("Conflicts", str(summary.get("conflicts", 0)))
    table.add_row("Processing time", f"{record.processing_time_ms} ms")
    table.add_row("Models", ", ".join(record.models_used))
    console.print(table)

    script = payload.get("script")
    if script:
        console.print(
            Panel(
                script["narration"],
                title=f"Script ({script['profile']}, ~{script['estimated_duration_seconds']}s)",
                border_style="green",
            )
        )


@app.command()
def status(
    query_id: str = typer.Argument(..., help="Query ID"),
) -> None:
    """Show the stored state of a query via the API."""
    import httpx

    from dreamcut.config import settings

    url = f"http://{settings.api_host}:{settings.api_port}/api/v1/dreamcut/queries/{query_id}"
    try:
        response = httpx.get(url, timeout=10)
    except httpx.RequestError as e:
        console.print(f"[bold red]Cannot connect to API: {e}[/bold red]")
        console.print("[dim]Is the API server running?[/dim]")
        raise typer.Exit(code=1)

    data = response.json()
    if response.status_code != 200:
        console.print(f"[bold red]Error: {data.get('error', response.text)}[/bold red]")
        raise typer.Exit(code=1)

    query = data["query"]
    console.print(
        Panel.fit(
            f"[cyan]Status:[/cyan] {query['status']}\n"
            f"[cyan]Stage:[/cyan] {query['stage']}\n"
            f"[cyan]Progress:[/cyan] {query['progress']}%\n"
            f"[cyan]Prompt:[/cyan] {query['user_prompt'][:100]}"
            + (f"\n[red]Error:[/red] {query['error_message']}" if query.get("error_message") else ""),
            title=f"Query {query_id}",
            border_style="cyan",
        )
    )

    if data["assets"]:
        table = Table(title="Assets")
        table.add_column("Type", style="cyan")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Quality", justify="right")
        for item in data["assets"]:
            table.add_row(
                item["type"],
                item.get("filename") or item["url"][-40:],
                item["status"],
                f"{item['progress']}%",
                f"{item['quality_score']:.1f}" if item.get("quality_score") is not None else "-",
            )
        console.print(table)

    for message in data["messages"]:
        console.print(f"{message.get('emoji') or '•'} {message['content']}")


@app.command()
def health() -> None:
    """Check the health of all services."""
    import httpx

    from dreamcut.config import settings

    url = f"http://{settings.api_host}:{settings.api_port}/health/ready"

    try:
        response = httpx.get(url, timeout=10)
        data = response.json()

        table = Table(title="Service Health")
        table.add_column("Component", style="cyan")
        table.add_column("Status")

        for component in ("store", "notifier", "llm"):
            table.add_row(component, "✓" if data.get(component) else "✗")

        console.print(table)

        if data.get("ready"):
            console.print("[bold green]All services healthy![/bold green]")
        else:
            console.print("[bold yellow]Some services unhealthy[/bold yellow]")
            raise typer.Exit(code=1)

    except httpx.RequestError as e:
        console.print(f"[bold red]Cannot connect to API: {e}[/bold red]")
        console.print("[dim]Is the API server running?[/dim]")
        raise typer.Exit(code=1)


@app.command()
def worker() -> None:
    """Start a Celery worker (for development)."""
    console.print("[bold blue]Starting Celery worker...[/bold blue]")

    import subprocess
    import sys

    subprocess.run(
        [sys.executable, "-m", "celery", "-A", "dreamcut.worker", "worker", "--loglevel=info"],
        check=True,
    )


@app.command()
def profiles() -> None:
    """List available creative profiles."""
    from dreamcut.presets.profiles import PROFILES

    for name, profile in PROFILES.items():
        console.print(
            Panel.fit(
                f"[bold]{profile.display_name}[/bold]\n\n"
                f"{profile.description}\n\n"
                f"[cyan]Platforms:[/cyan] {', '.join(profile.platforms)}\n"
                f"[cyan]Duration:[/cyan] {profile.min_duration_seconds:g}-{profile.max_duration_seconds:g}s\n"
                f"[cyan]Pacing:[/cyan] {profile.pacing}\n"
                f"[cyan]Audio:[/cyan] {profile.audio_style}\n"
                f"[cyan]Priority:[/cyan] {profile.priority}\n\n"
                f"[dim]Keywords:[/dim] {', '.join(profile.keywords[:5])}...",
                title=name,
                border_style="cyan",
            )
        )
        console.print()


if __name__ == "__main__":
    app()
