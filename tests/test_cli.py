import json
from pathlib import Path

import pytest
from fakes import FakeStore, FakeTree
from typer.testing import CliRunner

from bucketsync.cli import main as cli_main
from bucketsync.core.config import SyncConfig
from bucketsync.core.errors import ConfigInvalid
from bucketsync.sync.models import SyncDirection
from bucketsync.sync.orchestrator import SyncOrchestrator

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "bucket:",
                "  name: notes-bucket",
                "sync:",
                f"  local_root: {tmp_path / 'vault'}",
                "  settle_delay_sec: 0",
                "logging:",
                f"  file: {tmp_path / 'runtime' / 'service.log'}",
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def fakes(monkeypatch):
    tree = FakeTree({"a.md": (b"a", 10)})
    store = FakeStore({"vault/stale.md": (b"old", 5)})
    built: list[SyncOrchestrator] = []

    def _build(cfg, _tree=None):
        orchestrator = SyncOrchestrator(tree, store, cfg.bucket.name, "vault/", SyncConfig(settle_delay_sec=0))
        built.append(orchestrator)
        return orchestrator

    monkeypatch.setattr(cli_main, "_build_orchestrator", _build)
    monkeypatch.setattr(cli_main, "setup_logging", lambda *_args, **_kwargs: None)
    return tree, store, built


def _history(tmp_path: Path) -> list[dict]:
    path = tmp_path / "runtime" / "run_history.jsonl"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_check_prints_plan_and_records_history(config_path: Path, fakes, tmp_path: Path):
    result = runner.invoke(cli_main.app, ["check", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["ok"] is True
    assert payload["status"] == "↑ 1 ✕ 1"
    assert payload["plan"]["paths"] == {"upload": ["a.md"], "download": [], "delete": ["remote:stale.md"]}
    assert payload["remote_truncated"] is False
    assert _history(tmp_path)[-1]["run_type"] == "check"


def test_push_syncs_from_local(config_path: Path, fakes):
    _tree, store, _built = fakes

    result = runner.invoke(cli_main.app, ["push", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["direction"] == SyncDirection.FROM_LOCAL.value
    assert payload["result"]["uploaded"] == 1
    assert payload["result"]["deleted"] == 1
    assert payload["status"] == "in sync"
    assert sorted(store.objects) == ["vault/a.md"]


def test_sync_direction_option_pulls(config_path: Path, fakes):
    tree, store, _built = fakes

    result = runner.invoke(cli_main.app, ["sync", "--config", str(config_path), "--direction", "from_remote"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["direction"] == "from_remote"
    assert payload["result"]["downloaded"] == 1
    assert tree.files["stale.md"][0] == b"old"
    assert "vault/a.md" in store.objects


def test_sync_failure_exits_2_and_records_error(config_path: Path, fakes, tmp_path: Path):
    _tree, store, _built = fakes
    store.failures["vault/a.md"] = ConnectionError("put failed")

    result = runner.invoke(cli_main.app, ["sync", "--config", str(config_path)])

    assert result.exit_code == 2
    payload = json.loads(result.stdout)
    assert payload["ok"] is False
    assert payload["error_type"] == "FirstBatchError"
    assert "upload_failed path=a.md" in payload["error"]
    assert _history(tmp_path)[-1]["ok"] is False


def test_config_invalid_exits_2(config_path: Path, monkeypatch):
    def _raise(_cfg, _tree=None):
        raise ConfigInvalid("profile 'nope' not found")

    monkeypatch.setattr(cli_main, "_build_orchestrator", _raise)
    monkeypatch.setattr(cli_main, "setup_logging", lambda *_args, **_kwargs: None)

    result = runner.invoke(cli_main.app, ["test", "--config", str(config_path)])

    assert result.exit_code == 2
    assert json.loads(result.stdout)["error_type"] == "ConfigInvalid"


def test_test_command_counts_objects(config_path: Path, fakes):
    result = runner.invoke(cli_main.app, ["test", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["objects"] == 1


def test_config_validate_strict_reports_errors(tmp_path: Path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(f"logging:\n  file: {tmp_path / 'service.log'}\n", encoding="utf-8")

    def _missing(_name):
        raise ConfigInvalid("profile 'default' not found")

    monkeypatch.setattr(cli_main, "resolve_profile", _missing)

    result = runner.invoke(cli_main.app, ["config-validate", "--config", str(path), "--strict"])

    assert result.exit_code == 2
    payload = json.loads(result.stdout)
    assert payload["ok"] is False
    assert "bucket_name_missing" in payload["errors"]
    assert "profile 'default' not found" in payload["errors"]
    assert payload["checks"]["config_exists"] is True


def test_config_validate_passes_with_known_profile(config_path: Path, monkeypatch, tmp_path: Path):
    (tmp_path / "vault").mkdir()
    monkeypatch.setattr(cli_main, "resolve_profile", lambda name: name)

    result = runner.invoke(cli_main.app, ["config-validate", "--config", str(config_path), "--strict"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["ok"] is True
    assert payload["checks"]["local_root_exists"] is True
    assert payload["checks"]["region_known"] is True


def test_config_show_dumps_config(config_path: Path):
    result = runner.invoke(cli_main.app, ["config-show", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["bucket"]["name"] == "notes-bucket"
    assert payload["sync"]["direction"] == "from_local"


def test_status_shows_last_run(config_path: Path, fakes, monkeypatch):
    monkeypatch.setattr(cli_main, "list_profiles", lambda: ["default"])
    runner.invoke(cli_main.app, ["check", "--config", str(config_path)])

    result = runner.invoke(cli_main.app, ["status", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert "notes-bucket" in result.stdout
    assert "check at" in result.stdout


def test_profiles_lists_names(monkeypatch):
    monkeypatch.setattr(cli_main, "list_profiles", lambda: ["default", "work"])

    result = runner.invoke(cli_main.app, ["profiles"])

    assert result.exit_code == 0
    assert result.stdout.split() == ["default", "work"]


def test_config_validate_rejects_missing_local_root(config_path: Path, monkeypatch):
    monkeypatch.setattr(cli_main, "resolve_profile", lambda name: name)

    result = runner.invoke(cli_main.app, ["config-validate", "--config", str(config_path), "--strict"])

    assert result.exit_code == 2
    payload = json.loads(result.stdout)
    assert payload["checks"]["local_root_exists"] is False
    assert any(e.startswith("local_root_missing") for e in payload["errors"])
