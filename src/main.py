"""Command-line entry point for the page navigation engine."""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
import uuid
from pathlib import Path
from typing import Mapping, Sequence

from pagewalker import (
    NavigationEngine,
    NavigationResult,
    NavigatorSettings,
    WorldGraph,
    build_engine,
)
from pagewalker.logging_config import configure_logging
from pagewalker.settings import load_world


class ServerLaunchError(RuntimeError):
    """Raised when the HTTP adapter cannot be started."""


def _format_host_for_url(host: str) -> str:
    """Return a host suitable for inclusion in an HTTP URL."""

    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


def format_result(result: NavigationResult) -> str:
    """Create a printable representation of a navigation result."""

    location = result.location
    environment = result.environment
    lines: list[str] = []
    if result.notice:
        lines.extend([f"! {result.notice}", ""])
    if result.rejected is not None:
        lines.extend([result.rejected.message, ""])

    lines.append(f"== {location.title} ==")
    if location.description:
        lines.append(location.description)

    conditions = f"{environment.season.value}, {environment.weather.value}, "
    conditions += f"{environment.time_of_day.value}, {environment.temperature:g}°C"
    lines.append(f"({conditions})")
    if environment.events:
        lines.append("Happening now: " + ", ".join(environment.events))

    if location.transitions:
        lines.append("")
        open_labels = set(result.available)
        for transition in location.transitions:
            marker = "" if transition.label in open_labels else " (closed)"
            lines.append(f"[{transition.label}]{marker}")
    return "\n".join(lines)


def run_cli(engine: NavigationEngine, session_id: str) -> None:
    """Drive a very small interactive loop using ``input``/``print``."""

    print("Welcome! Type a choice to follow it, 'look' to look around or 'quit' to leave.")
    print()
    print(format_result(engine.view(session_id)))

    while True:
        try:
            raw_input = input("\n> ")
        except EOFError:
            print("\n\nReached end of input. Until next time!")
            break
        except KeyboardInterrupt:
            print("\n\nInterrupted.")
            break

        player_input = raw_input.strip()
        lowered = player_input.lower()
        if lowered in {"quit", "exit", "q"}:
            print("\nThanks for walking!")
            break

        if not player_input or lowered == "look":
            result = engine.view(session_id)
        else:
            result = engine.act(session_id, _match_label(engine, session_id, player_input))
        print(format_result(result))


def _match_label(engine: NavigationEngine, session_id: str, text: str) -> str:
    """Accept choices typed in any letter case."""

    location = engine.world.location(engine.sessions.current(session_id))
    for label in location.labels():
        if label.lower() == text.lower():
            return label
    return text


def check_world(world_path: Path | None, *, strict: bool) -> int:
    """Load a world, report warnings and return a process exit code."""

    settings = NavigatorSettings(world_path=world_path, strict_reachability=strict)
    try:
        world = load_world(settings)
    except (ValueError, OSError) as exc:
        print(f"World failed to load: {exc}")
        return 2

    print(f"Loaded {len(world)} locations starting at '{world.start}'.")
    for warning in world.warnings:
        print(f"warning [{warning.kind}] {warning.message}")
    return 0


def serve(
    *,
    host: str,
    port: int,
    env: Mapping[str, str] | None = None,
) -> int:
    """Run the HTTP adapter under ``uvicorn`` until it exits."""

    command = [
        sys.executable,
        "-m",
        "uvicorn",
        "pagewalker.api.app:create_app",
        "--factory",
        "--host",
        host,
        "--port",
        str(port),
    ]

    process_env = os.environ.copy()
    if env is not None:
        process_env.update(env)

    print(f"Serving on http://{_format_host_for_url(host)}:{port}")
    try:
        completed = subprocess.run(command, env=process_env, check=False)
    except OSError as exc:  # pragma: no cover - exercising OS failures is hard
        raise ServerLaunchError(f"Failed to launch server: {exc}") from exc
    return completed.returncode


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Page navigation engine")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: PAGEWALKER_LOG_LEVEL or INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check", help="Validate a world file.")
    check_parser.add_argument(
        "--world",
        type=Path,
        default=None,
        help="Path to a JSON world file (default: the bundled demo world).",
    )
    check_parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat unreachable locations as errors.",
    )

    play_parser = subparsers.add_parser("play", help="Walk a world interactively.")
    play_parser.add_argument(
        "--world",
        type=Path,
        default=None,
        help="Path to a JSON world file (default: PAGEWALKER_WORLD_PATH or the demo world).",
    )
    play_parser.add_argument(
        "--session-id",
        type=str,
        default=None,
        help="Session identifier to use (default: a random one).",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP adapter.")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """Dispatch the selected subcommand."""

    args = _parse_args(argv)
    settings = NavigatorSettings.from_env()
    configure_logging(args.log_level or settings.log_level)

    if args.command == "check":
        raise SystemExit(check_world(args.world, strict=args.strict))

    if args.command == "serve":
        raise SystemExit(serve(host=args.host, port=args.port))

    world_path = args.world if args.world is not None else settings.world_path
    try:
        world: WorldGraph = load_world(
            NavigatorSettings(
                world_path=world_path,
                strict_reachability=settings.strict_reachability,
            )
        )
    except (ValueError, OSError) as exc:
        print(f"Failed to load world from '{world_path or 'bundled demo'}': {exc}")
        raise SystemExit(2) from exc

    engine = build_engine(settings, world=world)
    run_cli(engine, args.session_id or uuid.uuid4().hex)


if __name__ == "__main__":
    main()
