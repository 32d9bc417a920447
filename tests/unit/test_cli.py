from __future__ import annotations

import logging
import logging.handlers
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml

from policytree import cli


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in ("POLICYTREE_DOCUMENT_PATH", "POLICYTREE_LOG_FILE", "POLICYTREE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_explain_prints_patches_and_matrix(
    sample_document: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(["explain", str(sample_document), "fast-batch"]) == 0
    out = capsys.readouterr().out
    assert "behavior: fast-batch" in out
    assert "ancestry: fast-batch -> fast -> default" in out
    assert "max_concurrent_nodes=8" in out


def test_get_prints_configured_fields_as_yaml(
    sample_document: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = cli.main(
        ["get", str(sample_document), "fast", "write_retryable", "point", "availability"]
    )
    assert code == 0
    values = yaml.safe_load(capsys.readouterr().out)
    assert values["maximum_number_of_call_attempts"] == 4
    assert values["abandon_call_after"] == "5s"
    assert values["delay_between_retries"] == "20ms"
    assert values["commit_level"] == "COMMIT_ALL"
    assert "record_queue_size" not in values


@pytest.mark.parametrize(
    "argv",
    [
        ["explain", "{doc}", "nobody"],
        ["get", "{doc}", "fast", "write_retryable", "query", "availability"],
        ["explain", "{missing}", "fast"],
        ["--config", "{missing}", "explain", "{doc}", "fast"],
        ["watch"],
    ],
)
def test_errors_exit_with_code_two(
    argv: list[str], sample_document: Path, tmp_path: Path
) -> None:
    resolved = [
        part.format(doc=sample_document, missing=tmp_path / "missing.yaml") for part in argv
    ]
    assert cli.main(resolved) == 2


@pytest.mark.parametrize("amount", ["10xyz", "99999999999d"])
def test_broken_document_exits_with_code_two(
    amount: str, write_document: Callable[..., Path], caplog: pytest.LogCaptureFixture
) -> None:
    broken = write_document(f"svc:\n  allOperations:\n    abandonCallAfter: {amount}\n")
    with caplog.at_level(logging.ERROR):
        assert cli.main(["explain", str(broken), "svc"]) == 2
    assert "invalid behavior document" in caplog.text


def test_record_to_dict_renders_plain_values(sample_document: Path) -> None:
    registry = cli._load_registry(sample_document)
    record = registry.require("fast").get_settings("read", "point", "consistency")
    rendered = cli.record_to_dict(record)
    assert rendered["read_mode_sc"] == "LINEARIZE"
    assert rendered["wait_for_call_to_complete"] == "1s"
    assert rendered["send_key"] is True


def test_configure_logging_attaches_one_rotating_file_handler(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "policytree.log"
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        cli.configure_logging("debug", log_file)
        cli.configure_logging("debug", log_file)
        added = [handler for handler in root.handlers if handler not in before]
        assert len(added) == 1
        assert isinstance(added[0], logging.handlers.RotatingFileHandler)
        assert log_file.parent.is_dir()
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
