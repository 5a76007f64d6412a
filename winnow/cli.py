"""
Command-line front end.

Usage:
    python -m winnow render prompt.json [--budget N] [--tokenizer NAME] [--json]

prompt.json:
    {
      "budget": 4000,
      "sections": {"memory": 1000},
      "pieces": [
        {"role": "system", "content": "...", "priority": "always"},
        {"role": "user", "content": "...", "priority": 500, "section": "memory"}
      ]
    }
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .config import DEFAULT_CONFIG_PATH, load_config, counter_from_config
from .errors import WinnowError
from .prompt import Prompt
from .renderer import RenderResult
from .schema import parse_priority
from .tokenizer import TokenCounter

logger = logging.getLogger(__name__)

console = Console()

PREVIEW_CHARS = 60


def load_prompt(
    data: dict[str, Any],
    budget: int,
    counter: TokenCounter,
) -> Prompt:
    """Build a Prompt from a decoded prompt file."""
    prompt = Prompt(budget=budget, counter=counter)
    for name, max_tokens in data.get("sections", {}).items():
        prompt.section(name, max_tokens=max_tokens)
    for raw in data.get("pieces", []):
        fields = dict(raw)
        role = fields.pop("role")
        content = fields.pop("content")
        priority = parse_priority(fields.pop("priority"))
        prompt.add(role, content=content, priority=priority, **fields)
    return prompt


def _preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > PREVIEW_CHARS:
        return text[:PREVIEW_CHARS - 1] + "…"
    return text


def show_result(result: RenderResult, out: Console | None = None) -> None:
    """Print a rendered prompt as tables."""
    out = out or console

    table = Table(title="Messages", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Seq", justify="right")
    table.add_column("Role")
    table.add_column("Tokens", justify="right")
    table.add_column("Content")

    message_pieces = [p for p in result.included if not p.is_reservation]
    for index, piece in enumerate(message_pieces):
        marker = " ◆" if index == result.cache_breakpoint else ""
        table.add_row(
            f"{index}{marker}",
            str(piece.sequence),
            piece.role.value,
            str(piece.token_count),
            _preview(piece.content),
        )
    out.print(table)

    if result.dropped:
        dropped = Table(title="Dropped", show_header=True)
        dropped.add_column("Seq", justify="right")
        dropped.add_column("Priority", justify="right")
        dropped.add_column("Tokens", justify="right")
        dropped.add_column("Content")
        for piece in result.dropped:
            dropped.add_row(
                str(piece.sequence),
                repr(piece.priority),
                str(piece.token_count),
                _preview(piece.content),
            )
        out.print(dropped)

    for usage in result.fallbacks_used:
        out.print(f"[yellow]fallback {usage.index}[/yellow] used for seq {usage.piece.sequence}")

    out.print(
        f"[bold]{result.total_tokens}/{result.budget}[/bold] tokens "
        f"({result.utilization:.0%}), threshold {result.threshold}, "
        f"{len(result.included)} included, {len(result.dropped)} dropped, "
        f"{len(result.condition_excluded)} excluded"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="winnow",
        description="Priority-based prompt composition with token budgeting",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    render_parser = subparsers.add_parser("render", help="Render a prompt file")
    render_parser.add_argument("prompt", type=Path, help="Prompt JSON file")
    render_parser.add_argument("--budget", "-b", type=int, help="Token budget")
    render_parser.add_argument(
        "--tokenizer", "-t",
        help="Token counter: approximate or tiktoken"
    )
    render_parser.add_argument(
        "--config", "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Config file (default: .winnow.json)"
    )
    render_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON"
    )
    return parser


def run_render(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.tokenizer:
        config["tokenizer"] = args.tokenizer

    with open(args.prompt, "r", encoding="utf-8") as f:
        data = json.load(f)

    budget = args.budget
    if budget is None:
        budget = data.get("budget", config["budget"])

    counter = counter_from_config(config)
    prompt = load_prompt(data, budget=budget, counter=counter)
    result = prompt.render()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        show_result(result)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
    )

    try:
        return run_render(args)
    except (WinnowError, ValidationError, ValueError, KeyError, OSError) as e:
        logger.debug("Render failed", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        return 1
