"""StoryReel CLI - turn a story into narrated scenes, frames and transition videos."""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from storyreel_core_schemas import (
    STYLES,
    AspectRatio,
    AssetSlot,
    AudioProvider,
    Credentials,
    GenerationStatus,
    ImageProvider,
    Project,
    SegmentationMethod,
    VideoProvider,
)
from storyreel_providers import ProviderRegistry
from storyreel_services import (
    ArchiveExporter,
    GenerationService,
    ProjectService,
    ServiceError,
    TaskResult,
)
from storyreel_storage import ProjectManager

app = typer.Typer(
    name="storyreel",
    help="Turn a story into narrated scenes, frames and transition videos",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {
    GenerationStatus.IDLE: "dim",
    GenerationStatus.PENDING: "yellow",
    GenerationStatus.SUCCESS: "green",
    GenerationStatus.ERROR: "red",
    GenerationStatus.SKIPPED: "blue",
}


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def get_registry() -> ProviderRegistry:
    """Provider registry used by all commands."""
    return ProviderRegistry()


def parse_node_id(node_id: str) -> tuple[int, Optional[int], AssetSlot]:
    """Parse a node ID string into paragraph number, scene number and slot.

    Supports formats:
        p1_audio       -> (1, None, audio)
        p1_s2_start    -> (1, 2, start)
        p1_s2_end      -> (1, 2, end)
        p1_s2_video    -> (1, 2, video)

    Args:
        node_id: The node ID string to parse

    Returns:
        Tuple of (paragraph, scene, slot); numbers are 1-based

    Raises:
        ValueError: If the format is invalid
    """
    node_id = node_id.strip().lower()

    pattern = r'^p(\d+)(?:_s(\d+))?_(audio|start|end|video)$'
    match = re.match(pattern, node_id)

    if not match:
        raise ValueError(
            f"Invalid ID format: '{node_id}'. "
            "Expected format: p<N>_audio or p<N>_s<N>_<start|end|video> "
            "(e.g., p1_audio, p2_s3_start)"
        )

    paragraph = int(match.group(1))
    scene = int(match.group(2)) if match.group(2) else None
    slot = AssetSlot(match.group(3))

    if paragraph < 1 or (scene is not None and scene < 1):
        raise ValueError("Paragraph and scene numbers start at 1")
    if slot == AssetSlot.AUDIO and scene is not None:
        raise ValueError("Audio belongs to a paragraph (e.g., p1_audio)")
    if slot != AssetSlot.AUDIO and scene is None:
        raise ValueError(f"{slot.value} requires a scene number (e.g., p1_s2_{slot.value})")

    return paragraph, scene, slot


def resolve_node(project: Project, paragraph: int, scene: Optional[int]) -> tuple[str, Optional[str]]:
    """Map 1-based paragraph/scene numbers to node IDs.

    Raises:
        ValueError: If a number is out of range
    """
    if paragraph > len(project.paragraphs):
        raise ValueError(f"Paragraph {paragraph} not found (project has {len(project.paragraphs)})")
    target = project.paragraphs[paragraph - 1]
    if scene is None:
        return target.id, None
    if scene > len(target.scenes):
        raise ValueError(f"Scene {scene} not found in paragraph {paragraph} (has {len(target.scenes)})")
    return target.id, target.scenes[scene - 1].id


def resolve_project_path(project: Optional[str] = None) -> Path:
    """Resolve project path from project ID or use current directory.

    Args:
        project: Optional project ID or path. If provided, looks for:
                 1. Exact path if it exists
                 2. projects/{project} relative to current directory
                 3. projects/{project} relative to STORYREEL_ROOT env var
                 If None, uses current working directory.

    Returns:
        Resolved project path.

    Raises:
        typer.Exit: If project cannot be found.
    """
    if project is None:
        return Path.cwd()

    project_path = Path(project)
    if project_path.exists() and ProjectManager.exists(project_path):
        return project_path

    cwd_projects = Path.cwd() / "projects" / project
    if cwd_projects.exists() and ProjectManager.exists(cwd_projects):
        return cwd_projects

    root = os.environ.get("STORYREEL_ROOT")
    if root:
        root_projects = Path(root) / "projects" / project
        if root_projects.exists() and ProjectManager.exists(root_projects):
            return root_projects

    console.print(f"[red]Project '{project}' not found.[/red]")
    console.print("Searched in:")
    console.print(f"  - {project_path}")
    console.print(f"  - {cwd_projects}")
    if root:
        console.print(f"  - {Path(root) / 'projects' / project}")

    projects_dir = Path.cwd() / "projects"
    if projects_dir.exists():
        available = [p.name for p in projects_dir.iterdir() if p.is_dir() and ProjectManager.exists(p)]
        if available:
            console.print("\nAvailable projects:")
            for name in sorted(available):
                console.print(f"  - {name}")

    raise typer.Exit(1)


def load_service(project: Optional[str] = None) -> ProjectService:
    """Load the project from specified path or current directory."""
    path = resolve_project_path(project)
    if not ProjectManager.exists(path):
        console.print("[red]No project found in current directory.[/red]")
        console.print("Run [cyan]storyreel init <name> --story <file>[/cyan] to create a project.")
        raise typer.Exit(1)
    service = ProjectService(path, registry=get_registry())
    service.load()
    return service


def run_async(coro):
    """Run an async coroutine.

    Handles both standalone CLI usage and environments with existing event loops
    (Jupyter notebooks, IDEs, etc.) by using nest_asyncio when needed.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is None:
        return asyncio.run(coro)

    # Event loop already running (Jupyter, IDE, etc.)
    import nest_asyncio
    nest_asyncio.apply()
    return loop.run_until_complete(coro)


def fail(error: Exception) -> None:
    """Print an error and exit with status 1."""
    message = error.message if isinstance(error, ServiceError) else str(error)
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


def format_status(status: GenerationStatus) -> str:
    style = STATUS_STYLES[status]
    return f"[{style}]{status.value}[/{style}]"


@app.command()
def init(
    name: str = typer.Argument(..., help="Project name"),
    story: Path = typer.Option(..., "--story", "-s", exists=True, dir_okay=False, help="Story text file"),
    path: Optional[Path] = typer.Option(None, help="Project directory (defaults to current dir if empty, else ./projects/<name>)"),
):
    """Initialize a new StoryReel project from a story file."""
    if path is None:
        cwd = Path.cwd()
        # Use current directory if it's empty or only has hidden files
        if not any(f for f in cwd.iterdir() if not f.name.startswith('.')):
            path = cwd
        else:
            path = cwd / "projects" / name.lower().replace(" ", "-")

    text = story.read_text(encoding="utf-8")
    if not text.strip():
        console.print(f"[red]Story file {story} is empty.[/red]")
        raise typer.Exit(1)

    service = ProjectService(path, registry=get_registry())
    try:
        with console.status(f"Creating project '{name}'..."):
            service.create(name, source_text=text)
    except ServiceError as e:
        fail(e)

    console.print(f"[green]Project '{name}' created at {path}[/green]")
    console.print("\nNext steps:")
    console.print(f"  1. cd {path}")
    console.print("  2. storyreel segment")
    console.print("  3. storyreel storyboard")
    console.print("  4. storyreel generate")


@app.command()
def segment(
    method: Optional[SegmentationMethod] = typer.Option(
        None, "--method", "-m", help="Segmentation method (defaults to the configured one)", case_sensitive=False,
    ),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID or path"),
):
    """Split the story into paragraphs."""
    service = load_service(project)

    try:
        with console.status("Segmenting story..."):
            result = run_async(service.segment(method=method))
    except ServiceError as e:
        fail(e)

    if result.used_fallback:
        console.print(f"[yellow]Remote segmentation failed, split on blank lines instead: {result.fallback_reason}[/yellow]")

    console.print(f"\n[green]Story split into {len(result.paragraphs)} paragraphs[/green] ({result.method.value})\n")
    for i, text in enumerate(result.paragraphs, 1):
        preview = text[:80] + "..." if len(text) > 80 else text
        console.print(f"  [bold]{i}.[/bold] {preview}")
    console.print("\n[dim]Next: storyreel storyboard[/dim]")


@app.command()
def configure(
    scene_count: Optional[int] = typer.Option(None, "--scene-count", help="Scenes per paragraph (1-20)"),
    aspect_ratio: Optional[AspectRatio] = typer.Option(None, "--aspect-ratio", help="Output aspect ratio"),
    style: Optional[str] = typer.Option(None, "--style", help=f"Visual style ({', '.join(STYLES)})"),
    voice: Optional[str] = typer.Option(None, "--voice", help="Narration voice"),
    audio: Optional[bool] = typer.Option(None, "--audio/--no-audio", help="Generate narration"),
    video: Optional[bool] = typer.Option(None, "--video/--no-video", help="Generate transition videos"),
    image_provider: Optional[ImageProvider] = typer.Option(None, "--image-provider", case_sensitive=False),
    audio_provider: Optional[AudioProvider] = typer.Option(None, "--audio-provider", case_sensitive=False),
    video_provider: Optional[VideoProvider] = typer.Option(None, "--video-provider", case_sensitive=False),
    segmentation: Optional[SegmentationMethod] = typer.Option(None, "--segmentation", case_sensitive=False),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID or path"),
):
    """Show or change generation settings."""
    service = load_service(project)

    try:
        settings = service.update_settings(
            scene_count=scene_count,
            aspect_ratio=aspect_ratio,
            style=style,
            voice=voice,
            generate_audio=audio,
            generate_video=video,
            image_provider=image_provider,
            audio_provider=audio_provider,
            video_provider=video_provider,
            segmentation_method=segmentation,
        )
    except ServiceError as e:
        fail(e)

    table = Table(title="Generation Settings", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.model_dump(mode="json", exclude={"credentials"}).items():
        table.add_row(key, str(value))
    console.print(table)

    if scene_count is not None and service.manager.project.paragraphs and service.needs_commit(settings.scene_count):
        console.print("[yellow]Scene count changed: the next storyboard run rebuilds all scenes.[/yellow]")


@app.command()
def storyboard(
    overwrite: bool = typer.Option(False, "--overwrite", help="Rewrite prompts that are already set"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID or path"),
):
    """Commit paragraphs and write start/end prompts for every scene."""
    service = load_service(project)

    def on_paragraph_complete(paragraph):
        console.print(f"  [green]✓[/green] {paragraph.text[:60]}")

    try:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
            progress.add_task("Writing scene prompts...", total=None)
            proj = run_async(service.storyboard(overwrite=overwrite, on_paragraph_complete=on_paragraph_complete))
    except ServiceError as e:
        fail(e)

    scenes = sum(len(p.scenes) for p in proj.paragraphs)
    console.print(f"\n[green]Storyboard ready:[/green] {len(proj.paragraphs)} paragraphs, {scenes} scenes")
    console.print("[dim]Next: storyreel generate[/dim]")


def _print_task(result: TaskResult) -> None:
    line = f"  {result.node_id}: {format_status(result.status)}"
    if result.error:
        line += f" [dim]{result.error}[/dim]"
    console.print(line)


def _print_pass(result) -> None:
    console.print(f"\n[green]Generation pass complete ({result.percent}%)[/green]")
    console.print(f"  Generated: {result.generated_count}")
    console.print(f"  Reused: {result.reused_count}")
    console.print(f"  Skipped: {result.skipped_count}")
    if result.error_count > 0:
        console.print(f"  [red]Errors: {result.error_count}[/red]")
        console.print("[dim]Run storyreel generate again to retry failed assets.[/dim]")


def _run_generation(run) -> None:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task_id = progress.add_task("Generating...", total=100)

        def on_progress(completed: int, total: int, percent: int):
            progress.update(task_id, completed=percent, description=f"Generating {completed}/{total}")

        try:
            result = run_async(run(on_progress, _print_task))
        except ServiceError as e:
            progress.stop()
            fail(e)

    _print_pass(result)


@app.command()
def generate(
    concurrency: int = typer.Option(1, "--concurrency", "-c", min=1, help="Paragraphs processed at once"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID or path"),
):
    """Generate every missing narration, frame and video.

    Assets that already succeeded are kept, so re-running after a failure
    only retries what failed.
    """
    service = load_service(project)
    generation = GenerationService(service.manager, registry=get_registry(), paragraph_concurrency=concurrency)

    _run_generation(
        lambda on_progress, on_task: generation.generate(on_progress=on_progress, on_task_complete=on_task)
    )


@app.command()
def regenerate(
    node_id: str = typer.Argument(..., help="Node ID (e.g., p1_audio, p1_s2_start, p1_s2_video)"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID or path"),
):
    """Regenerate one asset.

    Regenerating a start or end frame also regenerates the scene's video.

    Examples:
        storyreel regenerate p1_audio       # Paragraph 1 narration
        storyreel regenerate p2_s1_start    # Start frame of paragraph 2, scene 1
        storyreel regenerate p2_s1_video    # Only the transition video
    """
    try:
        paragraph_num, scene_num, slot = parse_node_id(node_id)
    except ValueError as e:
        fail(e)

    service = load_service(project)
    try:
        paragraph_id, scene_id = resolve_node(service.manager.project, paragraph_num, scene_num)
    except ValueError as e:
        fail(e)

    generation = GenerationService(service.manager, registry=get_registry())
    console.print(f"\n[cyan]Regenerating {node_id}[/cyan]")
    _run_generation(
        lambda on_progress, on_task: generation.regenerate(
            paragraph_id, scene_id, slot, on_progress=on_progress, on_task_complete=on_task,
        )
    )


@app.command()
def status(
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID or path (uses current directory if not specified)"),
):
    """Show project status."""
    service = load_service(project)
    proj = service.manager.project
    summary = service.get_status()

    console.print(Panel(
        f"[bold]{proj.name}[/bold]\n"
        f"ID: {proj.id}\n"
        f"Status: {proj.status.value}\n"
        f"Paragraphs: {summary['paragraphs']} ({summary['segments']} segments)\n"
        f"Created: {proj.created_at.strftime('%Y-%m-%d %H:%M')}",
        title="Project",
        border_style="blue",
    ))

    if not proj.paragraphs:
        console.print("\n[dim]No paragraphs committed yet. Run storyreel segment, then storyreel storyboard.[/dim]")
        return

    table = Table(title="Assets")
    table.add_column("Node", style="cyan")
    table.add_column("Audio")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Video")
    table.add_column("Error", style="red")

    for p_num, paragraph in enumerate(proj.paragraphs, 1):
        table.add_row(
            f"p{p_num}", format_status(paragraph.audio_status), "", "", "", paragraph.audio_error or "",
        )
        for s_num, scene in enumerate(paragraph.scenes, 1):
            table.add_row(
                f"p{p_num}_s{s_num}",
                "",
                format_status(scene.start_image_status),
                format_status(scene.end_image_status),
                format_status(scene.video_status),
                scene.error_msg or "",
            )
    console.print(table)


@app.command()
def export(
    output: Path = typer.Argument(..., help="Output ZIP file"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID or path"),
):
    """Export text and generated assets as a ZIP archive."""
    service = load_service(project)
    try:
        path = ArchiveExporter().export(service.manager.project.paragraphs, output)
    except ServiceError as e:
        fail(e)
    console.print(f"[green]Exported to {path}[/green]")


@app.command("validate-keys")
def validate_keys():
    """Check which configured API keys are accepted by their providers."""
    registry = get_registry()
    credentials = Credentials.from_env()

    table = Table(title="API Keys")
    table.add_column("Provider", style="cyan")
    table.add_column("Variable")
    table.add_column("Status")

    async def check_all() -> dict[str, Optional[bool]]:
        results: dict[str, Optional[bool]] = {}
        for slot in registry.validator_slots:
            key = getattr(credentials, slot)
            results[slot] = await registry.validator_for(slot).validate_key(key) if key else None
        return results

    with console.status("Validating keys..."):
        results = run_async(check_all())

    for slot, valid in results.items():
        if valid is None:
            label = "[dim]not set[/dim]"
        elif valid:
            label = "[green]valid[/green]"
        else:
            label = "[red]invalid[/red]"
        table.add_row(slot, Credentials.ENV_VARS[slot], label)
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    projects_dir: Optional[Path] = typer.Option(None, help="Directory for storing projects"),
):
    """Start the StoryReel API server."""
    import uvicorn

    from storyreel_api.app import create_app
    from storyreel_api.deps import settings

    if projects_dir:
        settings.projects_dir = projects_dir
    else:
        settings.projects_dir = Path.cwd() / "projects"

    console.print("\n[bold]StoryReel API Server[/bold]")
    console.print(f"  Projects: {settings.projects_dir}")
    console.print(f"  URL: http://{host}:{port}")
    console.print(f"  Docs: http://{host}:{port}/docs")
    console.print()

    if reload:
        uvicorn.run(
            "storyreel_api.app:app",
            host=host,
            port=port,
            reload=True,
        )
    else:
        app_instance = create_app(projects_dir=settings.projects_dir)
        uvicorn.run(app_instance, host=host, port=port)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
