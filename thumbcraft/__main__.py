"""Command-line client.

Runs one request and writes the generated images to a directory. In
selection mode the fetched reference candidates are listed and the user
picks which ones to send with the generation request.

    python -m thumbcraft "Blue-Eyes vs Dark Magician, dramatic lighting"
    thumbcraft --mode selection --output-dir out/ "..."
"""

import asyncio
import logging
import mimetypes
import os
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Prompt
from rich.table import Table

from .config import MODES, OrchestratorConfig
from .errors import ThumbcraftError
from .orchestrator import Orchestrator
from .selection import PendingSelection
from .types import InlineImage, ParsedResult

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )
    # SDK transports are chatty at INFO
    for noisy in ("httpx", "httpcore", "mcp", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)


def _save_images(images: List[InlineImage], output_dir: str, prefix: str) -> List[str]:
    os.makedirs(output_dir, exist_ok=True)
    paths = []
    for i, image in enumerate(images, 1):
        ext = mimetypes.guess_extension(image.mime_type) or ".bin"
        path = os.path.join(output_dir, f"{prefix}-{i}{ext}")
        with open(path, "wb") as f:
            f.write(image.decode())
        paths.append(path)
    return paths


def _show_result(result: ParsedResult, output_dir: str) -> None:
    if result.text:
        console.print(result.text)
    if result.round_budget_exhausted:
        console.print(f"[yellow]Stopped after {result.tool_rounds} tool rounds "
                      "(budget exhausted); result may be incomplete.[/yellow]")
    for path in _save_images(result.images, output_dir, "thumbnail"):
        console.print(f"[green]Saved[/green] {path}")
    if not result.text and not result.images:
        console.print("[yellow]The model returned no content.[/yellow]")


def _ask_selection(pending: PendingSelection, output_dir: str) -> Optional[List[int]]:
    """Show candidates; returns chosen indices, or None to cancel."""
    paths = _save_images(pending.candidates, os.path.join(output_dir, "candidates"), "candidate")
    table = Table(title=f"{len(pending.candidates)} reference candidate(s)")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("File")
    for i, (image, path) in enumerate(zip(pending.candidates, paths)):
        table.add_row(str(i), image.mime_type, path)
    console.print(table)

    while True:
        answer = Prompt.ask(
            "Indices to use (comma separated, empty for none, 'c' to cancel)",
            default="",
            console=console,
        ).strip()
        if answer.lower() == "c":
            return None
        if not answer:
            return []
        try:
            chosen = [int(token) for token in answer.replace(" ", "").split(",") if token]
        except ValueError:
            console.print("[red]Enter numbers separated by commas.[/red]")
            continue
        if all(0 <= i < len(pending.candidates) for i in chosen):
            return chosen
        console.print("[red]Index out of range.[/red]")


async def _run(args) -> int:
    overrides = {"mode": args.mode} if args.mode else {}
    config = OrchestratorConfig.from_env(env_file=args.env_file, **overrides)
    orchestrator = Orchestrator.from_config(config)

    with console.status("Working..."):
        result = await orchestrator.run(args.message)

    if isinstance(result, PendingSelection):
        if not result.candidates:
            console.print("[yellow]No reference images were found.[/yellow]")
        chosen = _ask_selection(result, args.output_dir) if result.candidates else []
        if chosen is None:
            orchestrator.cancel(result, [])
            console.print("Cancelled.")
            return 0
        with console.status("Generating..."):
            result = await orchestrator.resume(result, [], chosen)

    _show_result(result, args.output_dir)
    return 0


def main():
    import argparse

    parser = argparse.ArgumentParser(
        prog="thumbcraft",
        description="Generate video thumbnails with Gemini and MCP reference tools",
    )
    parser.add_argument("message", help="What the thumbnail should show")
    parser.add_argument(
        "--mode",
        choices=MODES,
        help="iterative tool loop, or human selection of reference images "
             "(overrides THUMBCRAFT_MODE)",
    )
    parser.add_argument(
        "--output-dir", "-o",
        default="thumbnails",
        help="Directory for generated images (default: thumbnails)",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )
    args = parser.parse_args()

    _configure_logging(args.verbose)
    try:
        sys.exit(asyncio.run(_run(args)))
    except ThumbcraftError as exc:
        console.print(f"[red]{exc.user_message}[/red]")
        if exc.details:
            console.print(f"[dim]{exc.details}[/dim]")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
