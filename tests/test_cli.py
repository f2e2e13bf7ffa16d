import json

import pytest
from typer.testing import CliRunner

from batch_generation_service import cli
from batch_generation_service.config import get_settings
from batch_generation_service.jobs.orchestrator import build_orchestrator

from conftest import RecordingClient

runner = CliRunner()


@pytest.fixture
def generator(tmp_path, monkeypatch):
    fake = RecordingClient(fail_names={"broken"})
    monkeypatch.setenv("BATCHGEN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("BATCHGEN_RETRY_BASE_DELAY_SECONDS", "0")
    monkeypatch.setenv("BATCHGEN_RETRY_MAX_ATTEMPTS", "1")
    monkeypatch.setattr(cli, "build_orchestrator", lambda settings: build_orchestrator(settings, client=fake))
    monkeypatch.setattr(cli, "configure_from_settings", lambda *_, **__: None)
    get_settings.cache_clear()
    yield fake
    get_settings.cache_clear()


def test_run_from_configs_file(tmp_path, generator):
    configs_path = tmp_path / "configs.json"
    configs_path.write_text(json.dumps([{"name": "a", "payload": {"name": "a"}}, {"name": "b", "payload": {"name": "b"}}]))

    result = runner.invoke(cli.app, ["run", "Quiz", str(configs_path), "--export-bank", "bank-1", "--tag", "t1"])

    assert result.exit_code == 0, result.output
    assert "completed" in result.output
    assert "ok=2 failed=0" in result.output
    exported = json.loads((tmp_path / "data" / "banks" / "bank-1.json").read_text())
    assert [entry["tags"] for entry in exported] == [["t1"], ["t1"]]

    listed = runner.invoke(cli.app, ["list"])
    assert listed.exit_code == 0
    assert "Quiz" in listed.output


def test_run_failing_batch_exits_non_zero(tmp_path, generator):
    configs_path = tmp_path / "configs.json"
    configs_path.write_text(json.dumps([{"name": "broken", "payload": {"name": "broken"}}]))

    result = runner.invoke(cli.app, ["run", "Broken", str(configs_path)])

    assert result.exit_code == 1
    assert "failed" in result.output


def test_run_from_template(generator):
    result = runner.invoke(cli.app, ["run", "Exam", "--template", "template_exam_set", "--base-payload", '{"topic": "Cells"}'])

    assert result.exit_code == 0, result.output
    assert len(generator.calls) == 3
    assert all(call["topic"] == "Cells" for call in generator.calls)


def test_run_requires_some_configs(generator):
    result = runner.invoke(cli.app, ["run", "Nothing"])
    assert result.exit_code != 0


def test_retry_and_delete(tmp_path, generator):
    configs_path = tmp_path / "configs.json"
    configs_path.write_text(json.dumps([{"name": "ok", "payload": {"name": "ok"}}, {"name": "broken", "payload": {"name": "broken"}}]))
    runner.invoke(cli.app, ["run", "Partial", str(configs_path)])
    batch_id = json.loads((tmp_path / "data" / "batches.json").read_text())[0]["id"]

    generator.fail_names.clear()
    retried = runner.invoke(cli.app, ["retry", batch_id])
    assert retried.exit_code == 0, retried.output
    assert "ok=2 failed=0" in retried.output

    again = runner.invoke(cli.app, ["retry", batch_id])
    assert again.exit_code == 1

    assert runner.invoke(cli.app, ["delete", batch_id]).exit_code == 0
    assert runner.invoke(cli.app, ["delete", batch_id]).exit_code == 1


def test_prune_and_templates(generator):
    pruned = runner.invoke(cli.app, ["prune", "--days", "1"])
    assert pruned.exit_code == 0
    assert "Removed 0 batches" in pruned.output

    templates = runner.invoke(cli.app, ["templates"])
    assert "template_difficulty_progression" in templates.output


def test_show_config(generator):
    result = runner.invoke(cli.app, ["show-config"])
    assert result.exit_code == 0
    assert json.loads(result.output)["concurrency_limit"] == 2
