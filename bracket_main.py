"""
Bracketeer — scenario entry point.

Usage:
    python bracket_main.py [scenario.yaml] [--config config.yaml]

Wires together:
    config → logging → scenario → tournament engine → CLI display
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import sys
from pathlib import Path

from bracketeer.cli.bracket_display import console, display_event, render_bracket
from bracketeer.config import Config, LoggingConfig, load_config
from bracketeer.errors import BracketeerError
from bracketeer.scenario import load_scenario, run_scenario


def _setup_logging(cfg: LoggingConfig) -> None:
    log_file = cfg.file_path
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=cfg.level_number,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.handlers.RotatingFileHandler(
                log_file, maxBytes=2 * 1024 * 1024, backupCount=3, encoding="utf-8"
            ),
        ],
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play a single-elimination tournament scenario.")
    parser.add_argument("scenario", nargs="?", default="scenario.example.yaml")
    parser.add_argument("--config", default="config.yaml")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> None:
    config_path = Path(args.config)
    try:
        config = load_config(config_path) if config_path.exists() else Config()
    except ValueError as exc:
        console.print(f"[red]Config error:[/] {exc}")
        sys.exit(1)

    _setup_logging(config.logging)

    try:
        scenario = load_scenario(args.scenario)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Scenario error:[/] {exc}")
        sys.exit(1)

    try:
        outcome = await run_scenario(scenario, config.engine, on_event=display_event)
    except BracketeerError as exc:
        console.print(f"[red]{exc.code}:[/] {exc}")
        sys.exit(1)

    render_bracket(outcome.bracket)
    if outcome.results.runner_up:
        console.print(f"[dim]Runner-up: {outcome.results.runner_up}[/]")


def main() -> None:
    asyncio.run(_main(_parse_args()))


if __name__ == "__main__":
    main()
