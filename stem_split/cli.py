"""Command-line interface for Stem Split.

Provides commands for:
- split: Separate audio into one WAV per source
- split-vocals: Separate audio into vocal.wav and instrumental.wav
- analyze: Tempo and key of a file
- models: List the installed model catalog
- devices: Show the compute device that would be used
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .core.config import load_model_catalog
from .core.constants import MODEL_CATALOG_FILENAME
from .core.errors import StemSplitError

app = typer.Typer(
    name="stem-split",
    help="Neural stem separation with tempo and key analysis",
    rich_markup_mode="markdown",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _resolve_models_dir(models_dir: Optional[Path]) -> Path:
    from .separation.service import MODELS_DIR_ENV, default_models_dir

    models_dir = models_dir or default_models_dir()
    if models_dir is None:
        console.print(
            f"[red]Error: No models directory. Pass --models-dir or set {MODELS_DIR_ENV}[/red]"
        )
        raise typer.Exit(1)
    return models_dir


def _build_service(models_dir: Optional[Path], model: Optional[str], device: str):
    from .separation import SeparationService

    models_dir = _resolve_models_dir(models_dir)
    if model:
        return SeparationService.from_models_dir(models_dir, device=device, preferred=(model,))
    return SeparationService.from_models_dir(models_dir, device=device)


def _run_split(
    input_file: Path,
    output_dir: Optional[Path],
    models_dir: Optional[Path],
    model: Optional[str],
    device: str,
    single_thread: bool,
    vocals_only: bool,
) -> None:
    from .separation import limit_native_threads

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    if single_thread:
        limit_native_threads(1)

    if output_dir is None:
        output_dir = input_file.parent / f"{input_file.stem}_stems"

    try:
        service = _build_service(models_dir, model, device)
        console.print(f"\n[bold blue]Stem Separation: {input_file.name}[/bold blue]\n")
        console.print(f"   Model: {service.config.name} ({', '.join(service.config.sources)})")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            progress.add_task("Separating...", total=None)
            if vocals_only:
                result = asyncio.run(service.split_vocal_instrumental(input_file, output_dir))
            else:
                result = asyncio.run(service.split_stems(input_file, output_dir))
    except StemSplitError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(f"   Separation time: {result.separation_time:.1f}s")
    for name, path in result.paths.items():
        console.print(f"   [green]{name}[/green] -> {path}")
    console.print(f"\n[green]Saved {len(result)} stems to {output_dir}[/green]")


@app.command()
def split(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    output_dir: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Output directory (default: <input>_stems/)"
    ),
    models_dir: Optional[Path] = typer.Option(
        None, "--models-dir", help=f"Directory holding {MODEL_CATALOG_FILENAME} and weights"
    ),
    model: Optional[str] = typer.Option(
        None, "-m", "--model", help="Model name (default: htdemucs_6s, else htdemucs)"
    ),
    device: str = typer.Option("auto", "--device", help="auto, cpu, cuda or mps"),
    single_thread: bool = typer.Option(
        False, "--single-thread", help="Limit OpenMP/MKL to one thread"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """Separate audio into one WAV per source.

    Examples:
        stem-split split song.mp3 --models-dir models/
        stem-split split song.mp3 -o out/ --model htdemucs
    """
    _setup_logging(verbose)
    _run_split(input_file, output_dir, models_dir, model, device, single_thread, vocals_only=False)


@app.command("split-vocals")
def split_vocals(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    output_dir: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Output directory (default: <input>_stems/)"
    ),
    models_dir: Optional[Path] = typer.Option(
        None, "--models-dir", help=f"Directory holding {MODEL_CATALOG_FILENAME} and weights"
    ),
    model: Optional[str] = typer.Option(None, "-m", "--model", help="Model name"),
    device: str = typer.Option("auto", "--device", help="auto, cpu, cuda or mps"),
    single_thread: bool = typer.Option(
        False, "--single-thread", help="Limit OpenMP/MKL to one thread"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """Separate audio into vocal.wav and instrumental.wav."""
    _setup_logging(verbose)
    _run_split(input_file, output_dir, models_dir, model, device, single_thread, vocals_only=True)


@app.command()
def analyze(
    input_file: Path = typer.Argument(..., help="Input audio file"),
    cover_dir: Optional[Path] = typer.Option(
        None, "--cover", help="Also extract embedded JPEG artwork into this directory"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
):
    """Detect tempo and key of an audio file."""
    from .analysis import detect_features
    from .input import extract_cover_image

    _setup_logging(verbose)

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    features = detect_features(input_file)
    result = features.to_dict()

    if cover_dir is not None:
        try:
            cover = extract_cover_image(input_file, cover_dir)
        except StemSplitError as e:
            console.print(f"[yellow]Warning: {escape(str(e))}[/yellow]")
            cover = None
        result["cover"] = str(cover) if cover else None

    if json_output:
        console.print_json(data=result)
        return

    bpm = f"{features.bpm:.1f}" if features.bpm is not None else "unknown"
    console.print(f"   Tempo: {bpm} BPM")
    console.print(f"   Key: {features.key or 'unknown'}")
    if cover_dir is not None:
        console.print(f"   Cover: {result['cover'] or 'none'}")


@app.command()
def models(
    models_dir: Optional[Path] = typer.Option(
        None, "--models-dir", help=f"Directory holding {MODEL_CATALOG_FILENAME} and weights"
    ),
):
    """List models in the catalog and whether their weights are installed."""
    models_dir = _resolve_models_dir(models_dir)
    try:
        catalog = load_model_catalog(models_dir / MODEL_CATALOG_FILENAME)
    except StemSplitError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title="Models")
    table.add_column("Name")
    table.add_column("Rate")
    table.add_column("Channels")
    table.add_column("Sources")
    table.add_column("Installed")
    for config in catalog:
        installed = (models_dir / config.weights_name).exists()
        table.add_row(
            config.name,
            str(config.sample_rate),
            str(config.channel_count),
            ", ".join(config.sources),
            "[green]yes[/green]" if installed else "[dim]no[/dim]",
        )
    console.print(table)


@app.command()
def devices(
    device: str = typer.Option("auto", "--device", help="auto, cpu, cuda or mps"),
):
    """Show the compute device selected for inference."""
    from .separation import get_device_info

    for key, value in get_device_info(device).items():
        console.print(f"   {key}: {value}")


if __name__ == "__main__":
    app()
