"""CLI entry point for Foyer."""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
import threading
import time
from dataclasses import asdict
from pathlib import Path

import yaml
from rich.console import Console
from rich.table import Table

from . import __version__
from .channel import ChannelLogHandler, OutputBuffer
from .config import ConsoleConfig, _get_config_path, load_config
from .engine import ConsoleEngine
from .errors import CancellationSignal, StateTransitionError
from .style import CHROME, GOLD, MUTED, style_text

logger = logging.getLogger(__name__)

PROMPT = "\033[1;96m❯\033[0m "

_EXIT_COMMANDS = {"/quit", "/exit"}

_HELP = """\
/spin [secs]    simulate a model call behind a spinner (default 3s)
/progress       simulate an indexer driving a progress line
/pause [cmd]    hand the terminal to a shell command, then resume
/history        list submitted lines
/quit           exit (Ctrl-D on an empty line also exits)
Ctrl-C cancels the current prompt or operation."""


def _configure_logging(config: ConsoleConfig, engine: ConsoleEngine | None = None) -> None:
    level = logging.DEBUG if config.debug else logging.INFO
    root = logging.getLogger()
    if config.log_file:
        logging.basicConfig(
            filename=config.log_file,
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        return
    if engine is not None:
        # Route records through the engine so they never break the prompt line
        handler = ChannelLogHandler(engine.channel)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
        root.setLevel(logging.DEBUG if config.debug else logging.WARNING)


def _background_worker(engine: ConsoleEngine, stop: threading.Event, interval: float = 7.0) -> None:
    """Stand-in for a summarization worker that reports progress asynchronously."""
    batch = 0
    while not stop.wait(interval):
        batch += 1
        engine.publish(style_text(f"[summarizer] compacted batch {batch}", MUTED))


def _simulate_model_call(engine: ConsoleEngine, seconds: float) -> None:
    phases = ["Thinking...", "Reading files...", "Drafting response..."]
    engine.show_spinner(phases[0])
    try:
        deadline = time.monotonic() + seconds
        step = seconds / len(phases)
        while time.monotonic() < deadline:
            time.sleep(0.05)
            engine.check_cancelled()
            elapsed = seconds - (deadline - time.monotonic())
            engine.show_spinner(phases[min(int(elapsed / step), len(phases) - 1)])
    finally:
        engine.hide_spinner()
    engine.publish(f"{style_text('AI:', GOLD)} done after {seconds:g}s")


def _simulate_indexer(engine: ConsoleEngine, total: int = 40) -> None:
    engine.start_progress()
    try:
        for i in range(total + 1):
            filled = int(20 * i / total)
            text = f"Indexing [{'#' * filled}{'.' * (20 - filled)}] {i}/{total}"
            engine.update_progress(text)
            if i % 10 == 0 and i:
                engine.publish(style_text(f"[indexer] checkpoint at {i} files", CHROME))
            time.sleep(0.05)
            engine.check_cancelled()
    except BaseException:
        engine.end_progress()
        raise
    engine.end_progress(keep=True)


def _pause_for_command(engine: ConsoleEngine, command: str) -> None:
    engine.pause()
    try:
        if command:
            subprocess.run(command, shell=True, check=False)
        else:
            shell = os.environ.get("SHELL", "/bin/sh")
            print(f"Starting {shell}; exit to return.", flush=True)
            subprocess.run([shell], check=False)
    finally:
        engine.resume()


def _run_demo(config: ConsoleConfig) -> None:
    with ConsoleEngine(config=config) as engine:
        _configure_logging(config, engine)
        stop = threading.Event()
        worker = threading.Thread(target=_background_worker, args=(engine, stop), daemon=True)
        worker.start()
        engine.publish_markup(f"[bold {GOLD}]foyer[/] v{__version__} - type /help for commands")
        try:
            while True:
                try:
                    line = engine.readline(PROMPT)
                except CancellationSignal:
                    continue
                if line is None:
                    break
                command = line.strip()
                if not command:
                    continue
                name, _, arg = command.partition(" ")
                name = name.lower()
                try:
                    if name in _EXIT_COMMANDS:
                        break
                    elif name == "/help":
                        buf = OutputBuffer()
                        buf.add(_HELP)
                        engine.publish_buffer(buf)
                    elif name == "/spin":
                        try:
                            seconds = max(0.1, float(arg)) if arg else 3.0
                        except ValueError:
                            seconds = 3.0
                        _simulate_model_call(engine, seconds)
                    elif name == "/progress":
                        _simulate_indexer(engine)
                    elif name == "/pause":
                        _pause_for_command(engine, arg)
                    elif name == "/history":
                        for i, entry in enumerate(engine.history.entries, 1):
                            engine.publish(f"{i:>4}  {entry}")
                    else:
                        engine.publish(f"{style_text('You said:', MUTED)} {line}")
                except KeyboardInterrupt:
                    engine.publish(style_text("cancelled", MUTED))
                except StateTransitionError as e:
                    logger.error("%s", e)
                engine.flush()
        finally:
            stop.set()


def _show_config(config: ConsoleConfig, config_path: Path) -> None:
    console = Console()
    table = Table(title=f"Configuration ({config_path})", show_header=True)
    table.add_column("Key", style="bold", no_wrap=True)
    table.add_column("Value")

    def _rows(prefix: str, data: dict) -> None:
        for key, value in data.items():
            if isinstance(value, dict):
                _rows(f"{prefix}{key}.", value)
            else:
                table.add_row(f"{prefix}{key}", str(value))

    _rows("", asdict(config))
    console.print(table)


def main() -> None:
    parser = argparse.ArgumentParser(prog="foyer", description="Foyer - terminal console engine for agent CLIs")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("demo", help="Interactive demo REPL with background output")
    subparsers.add_parser("config", help="Show the resolved configuration")

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", dest="config_path", default=None, help="Path to config.yaml")
    parser.add_argument("--debug", action="store_true", help="Log and echo mode transitions")
    parser.add_argument("--log-file", default=None, help="Write logs to this file instead of the console")

    args = parser.parse_args()

    config_path = Path(args.config_path).expanduser() if args.config_path else _get_config_path()
    try:
        config = load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    if args.debug:
        config.debug = True
    if args.log_file:
        config.log_file = args.log_file

    if args.command == "config":
        _show_config(config, config_path)
        return

    if args.command in (None, "demo"):
        if not sys.stdin.isatty():
            print("foyer demo needs an interactive terminal", file=sys.stderr)
            sys.exit(1)
        _run_demo(config)


if __name__ == "__main__":
    main()
