"""Smoke tests for the command-line interface."""

from __future__ import annotations

import builtins
import json
import logging
import subprocess
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Callable

import pytest

import main
from main import check_world, format_result, run_cli, serve
from pagewalker.navigation import NavigationEngine


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    package_logger = logging.getLogger("pagewalker")
    handlers = list(package_logger.handlers)
    level = package_logger.level
    yield
    for handler in list(package_logger.handlers):
        if handler not in handlers:
            package_logger.removeHandler(handler)
    package_logger.setLevel(level)


def _feed_input(monkeypatch: pytest.MonkeyPatch, entries: list[str]) -> None:
    iterator = iter(entries)

    def _fake_input(prompt: str = "") -> str:
        try:
            return next(iterator)
        except StopIteration as exc:
            raise EOFError from exc

    monkeypatch.setattr(builtins, "input", _fake_input)


def _write_world(path: Path, definitions: list[dict[str, Any]]) -> Path:
    path.write_text(
        json.dumps({"start": "start", "locations": definitions}), encoding="utf-8"
    )
    return path


def test_run_cli_walks_and_quits(
    engine: NavigationEngine,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _feed_input(monkeypatch, ["GO_NORTH", "enter_cave", "look", "quit"])

    run_cli(engine, "cli-session")

    output = capsys.readouterr().out
    assert "== Start ==" in output
    assert "== Forest ==" in output
    assert "requires weather to be stormy" in output
    assert "[enter_cave] (closed)" in output
    assert "Thanks for walking!" in output
    assert engine.sessions.current("cli-session") == "forest"


def test_run_cli_handles_end_of_input(
    engine: NavigationEngine,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _feed_input(monkeypatch, [])

    run_cli(engine, "cli-session")

    assert "Reached end of input" in capsys.readouterr().out


def test_format_result_shows_notice_and_rejection(engine: NavigationEngine) -> None:
    engine.sessions.apply("s1", "demolished-tower")
    engine.view("s1")
    engine.sessions.apply("s1", "demolished-tower")

    text = format_result(engine.act("s1", "fly"))

    assert text.startswith("! The place you were standing no longer exists.")
    assert "You're not sure how to 'fly'" in text
    assert "(summer, clear, day, 20°C)" in text


def test_check_world_reports_warnings(
    tmp_path: Path,
    definitions: list[dict[str, Any]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    definitions.append({"id": "attic", "title": "Attic", "transitions": []})
    path = _write_world(tmp_path / "world.json", definitions)

    assert check_world(path, strict=False) == 0
    output = capsys.readouterr().out
    assert "Loaded 4 locations" in output
    assert "warning [unreachable]" in output
    assert "warning [dead_end]" in output

    assert check_world(path, strict=True) == 2
    assert "unreachable" in capsys.readouterr().out


def test_check_world_reports_structural_errors(
    tmp_path: Path,
    definitions: list[dict[str, Any]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    definitions[0]["transitions"].append({"label": "go_east", "target": "nowhere"})
    path = _write_world(tmp_path / "world.json", definitions)

    assert check_world(path, strict=False) == 2
    assert "unknown location 'nowhere'" in capsys.readouterr().out


def test_main_check_exits_with_status(
    tmp_path: Path,
    definitions: list[dict[str, Any]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("PAGEWALKER_LOG_LEVEL", raising=False)
    path = _write_world(tmp_path / "world.json", definitions)

    with pytest.raises(SystemExit) as excinfo:
        main.main(["check", "--world", str(path)])

    assert excinfo.value.code == 0


def test_main_play_uses_requested_world(
    tmp_path: Path,
    definitions: list[dict[str, Any]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    path = _write_world(tmp_path / "world.json", definitions)
    captured: dict[str, Any] = {}

    def _fake_run_cli(engine: NavigationEngine, session_id: str) -> None:
        captured["engine"] = engine
        captured["session_id"] = session_id

    monkeypatch.setattr(main, "run_cli", _fake_run_cli)

    main.main(["play", "--world", str(path), "--session-id", "abc"])

    assert captured["session_id"] == "abc"
    assert captured["engine"].world.start == "start"


def test_main_play_reports_bad_world(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "missing.json"

    with pytest.raises(SystemExit) as excinfo:
        main.main(["play", "--world", str(missing)])

    assert excinfo.value.code == 2
    assert "Failed to load world" in capsys.readouterr().out


def test_serve_runs_uvicorn_factory(monkeypatch: pytest.MonkeyPatch) -> None:
    recorded: dict[str, Any] = {}

    def _fake_run(command: list[str], **kwargs: Any) -> subprocess.CompletedProcess[bytes]:
        recorded["command"] = command
        recorded["env"] = kwargs["env"]
        return subprocess.CompletedProcess(command, 0)

    monkeypatch.setattr(main.subprocess, "run", _fake_run)

    assert serve(host="::1", port=9001, env={"PAGEWALKER_ENVIRONMENT_SEED": "4"}) == 0
    assert recorded["command"][1:4] == ["-m", "uvicorn", "pagewalker.api.app:create_app"]
    assert "--factory" in recorded["command"]
    assert recorded["command"][-2:] == ["--port", "9001"]
    assert recorded["env"]["PAGEWALKER_ENVIRONMENT_SEED"] == "4"


def test_run_cli_matches_labels_case_insensitively(
    make_engine: Callable[..., NavigationEngine],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = make_engine()
    _feed_input(monkeypatch, ["Go_North", "exit"])

    run_cli(engine, "s1")

    assert engine.sessions.current("s1") == "forest"


def test_check_world_reports_invalid_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")

    assert check_world(path, strict=False) == 2
    assert "not valid JSON" in capsys.readouterr().out


def test_main_play_reports_invalid_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main.main(["play", "--world", str(path)])

    assert excinfo.value.code == 2
    assert "Failed to load world" in capsys.readouterr().out
