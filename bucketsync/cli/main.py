from __future__ import annotations

import asyncio
import json
import logging
import signal
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from bucketsync.core.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from bucketsync.core.errors import ConfigInvalid, SyncError
from bucketsync.core.logging_setup import setup_logging
from bucketsync.providers.aws import REGIONS, create_s3_client, list_profiles, resolve_profile
from bucketsync.providers.local_tree import FileSystemTree
from bucketsync.providers.s3_store import S3ObjectStore
from bucketsync.sync.models import SyncDirection
from bucketsync.sync.orchestrator import SyncOrchestrator
from bucketsync.sync.watch import watch_loop

app = typer.Typer(add_completion=False, help="Sync a local directory with an S3 bucket prefix.")
console = Console()

ConfigOption = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to config.yaml.")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level.")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _load(path: Path, verbose: bool = False) -> AppConfig:
    cfg = load_config(path)
    setup_logging("DEBUG" if verbose else cfg.logging.level, cfg.logging.file)
    return cfg


def _history_path(cfg: AppConfig) -> Path:
    return Path(cfg.logging.file).parent / "run_history.jsonl"


def _append_run_history(cfg: AppConfig, summary: dict) -> None:
    path = _history_path(cfg)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(summary, ensure_ascii=False))
        f.write("\n")


def _read_last_run(cfg: AppConfig) -> Optional[dict]:
    path = _history_path(cfg)
    if not path.exists():
        return None
    for line in reversed(path.read_text(encoding="utf-8", errors="replace").splitlines()):
        raw = line.strip()
        if not raw:
            continue
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload
    return None


def _build_tree(cfg: AppConfig) -> FileSystemTree:
    return FileSystemTree(cfg.sync.local_root, trash_dir=cfg.sync.trash_dir, exclude_dirs=cfg.sync.exclude_dirs)


def _build_orchestrator(cfg: AppConfig, tree: Optional[FileSystemTree] = None) -> SyncOrchestrator:
    if not cfg.bucket.name.strip():
        raise ConfigInvalid("bucket_name_missing")
    profile = resolve_profile(cfg.aws.profile)
    client = create_s3_client(profile, cfg.aws.region, cfg.aws.endpoint)
    store = S3ObjectStore(client, cfg.bucket.name)
    return SyncOrchestrator(
        tree or _build_tree(cfg),
        store,
        bucket_name=cfg.bucket.name,
        prefix=cfg.key_prefix(),
        settings=cfg.sync,
    )


def _fail(cfg: Optional[AppConfig], run_type: str, error: Exception) -> None:
    out: dict[str, Any] = {
        "ok": False,
        "run_type": run_type,
        "checked_at": _now_iso(),
        "error": str(error),
        "error_type": type(error).__name__,
    }
    if cfg is not None:
        _append_run_history(cfg, out)
    _print_json(out)
    raise typer.Exit(2)


def _run_check(config: Path, verbose: bool) -> None:
    cfg = _load(config, verbose)
    try:
        orchestrator = _build_orchestrator(cfg)
        plan = asyncio.run(orchestrator.check())
    except SyncError as e:
        _fail(cfg, "check", e)
        return

    remote = orchestrator.state.remote
    out = {
        "ok": True,
        "run_type": "check",
        "checked_at": _now_iso(),
        "bucket": cfg.bucket.name,
        "prefix": cfg.key_prefix(),
        "status": plan.summary_text(),
        "remote_truncated": bool(remote is not None and remote.truncated),
        "plan": plan.to_summary(),
    }
    _append_run_history(cfg, out)
    _print_json(out)


def _run_sync(config: Path, verbose: bool, direction: Optional[SyncDirection], run_type: str) -> None:
    cfg = _load(config, verbose)
    try:
        orchestrator = _build_orchestrator(cfg)
        report = asyncio.run(orchestrator.sync(direction))
    except SyncError as e:
        _fail(cfg, run_type, e)
        return

    plan = orchestrator.state.plan
    out = {
        "ok": True,
        "run_type": run_type,
        "checked_at": _now_iso(),
        "direction": (direction or cfg.sync.direction).value,
        "result": report.to_summary() if report is not None else None,
        "status": plan.summary_text() if plan is not None else None,
    }
    _append_run_history(cfg, out)
    _print_json(out)


@app.command()
def check(config: Path = ConfigOption, verbose: bool = VerboseOption):
    """Compare local and remote files and print the pending plan."""
    _run_check(config, verbose)


@app.command()
def sync(
    config: Path = ConfigOption,
    verbose: bool = VerboseOption,
    direction: Optional[SyncDirection] = typer.Option(
        None,
        "--direction",
        case_sensitive=False,
        help="Override the configured source of truth for this run.",
    ),
):
    """Run one synchronization."""
    _run_sync(config, verbose, direction, "sync")


@app.command()
def push(config: Path = ConfigOption, verbose: bool = VerboseOption):
    """Sync with the local directory as the source of truth."""
    _run_sync(config, verbose, SyncDirection.FROM_LOCAL, "push")


@app.command()
def pull(config: Path = ConfigOption, verbose: bool = VerboseOption):
    """Sync with the bucket as the source of truth."""
    _run_sync(config, verbose, SyncDirection.FROM_REMOTE, "pull")


@app.command("test")
def test_connection(config: Path = ConfigOption, verbose: bool = VerboseOption):
    """List the bucket prefix once to verify credentials and settings."""
    cfg = _load(config, verbose)
    try:
        orchestrator = _build_orchestrator(cfg)
        count = asyncio.run(orchestrator.run_test())
    except SyncError as e:
        _fail(None, "test", e)
        return
    _print_json({"ok": True, "checked_at": _now_iso(), "bucket": cfg.bucket.name, "prefix": cfg.key_prefix(), "objects": count})


@app.command()
def watch(config: Path = ConfigOption, verbose: bool = VerboseOption):
    """Keep running: auto-sync on local changes and pull remote state periodically."""
    cfg = _load(config, verbose)
    tree = _build_tree(cfg)
    try:
        orchestrator = _build_orchestrator(cfg, tree)
    except SyncError as e:
        _fail(None, "watch", e)
        return

    async def _main():
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                pass
        await orchestrator.start()
        await watch_loop(orchestrator, tree, cfg.sync, stop_event)
        await orchestrator.auto_sync_task.wait_idle()

    try:
        asyncio.run(_main())
    except SyncError as e:
        _fail(cfg, "watch", e)


@app.command()
def status(config: Path = ConfigOption):
    """Show configuration and the last recorded run."""
    cfg = load_config(config)
    last = _read_last_run(cfg)
    profiles = list_profiles()

    table = Table(title="bucketsync status")
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("config", str(config))
    table.add_row("local_root", cfg.sync.local_root)
    table.add_row("bucket", cfg.bucket.name or "(unset)")
    table.add_row("prefix", cfg.key_prefix() or "(bucket root)")
    table.add_row("profile", cfg.aws.profile)
    table.add_row("profile_found", "yes" if cfg.aws.profile in profiles else "no")
    table.add_row("region", cfg.aws.region)
    table.add_row("direction", cfg.sync.direction.value)
    table.add_row("local_file_protection", "on" if cfg.sync.local_file_protection else "off")
    table.add_row("auto_sync", "on" if cfg.sync.auto_sync else "off")
    table.add_row("auto_pull", f"every {cfg.sync.auto_pull_interval}s" if cfg.sync.auto_pull else "off")
    table.add_row("log", cfg.logging.file)
    if last:
        table.add_row("last_run", f"{last.get('run_type')} at {last.get('checked_at')}")
        table.add_row("last_result", "ok" if last.get("ok") else f"error: {last.get('error')}")
        if last.get("status"):
            table.add_row("last_status", str(last.get("status")))
    else:
        table.add_row("last_run", "(none)")
    console.print(table)


@app.command()
def profiles():
    """List AWS profiles found in the shared credentials files."""
    names = list_profiles()
    if not names:
        console.print("no AWS profiles found")
        raise typer.Exit(2)
    for name in names:
        console.print(name)


@app.command("config-show")
def config_show(config: Path = ConfigOption):
    """Show current config.yaml."""
    cfg = load_config(config)
    _print_json(cfg.model_dump(mode="json"))


@app.command("config-validate")
def config_validate(
    config: Path = ConfigOption,
    strict: bool = typer.Option(False, "--strict", help="Return non-zero when validation fails."),
):
    """Validate config and AWS prerequisites without touching the bucket."""
    out: dict[str, Any] = {
        "ok": True,
        "checked_at": _now_iso(),
        "config_path": str(config),
        "checks": {
            "config_exists": config.exists(),
            "bucket_name_configured": False,
            "profile_found": False,
            "region_known": False,
            "local_root_exists": False,
        },
        "warnings": [],
        "errors": [],
    }

    try:
        cfg = load_config(config)
    except Exception as e:
        out["ok"] = False
        out["errors"].append(f"load_config_failed: {e}")
        _print_json(out)
        if strict:
            raise typer.Exit(2)
        return

    out["checks"]["bucket_name_configured"] = bool(cfg.bucket.name.strip())
    if not out["checks"]["bucket_name_configured"]:
        out["errors"].append("bucket_name_missing")

    try:
        resolve_profile(cfg.aws.profile)
        out["checks"]["profile_found"] = True
    except ConfigInvalid as e:
        out["errors"].append(str(e))

    out["checks"]["region_known"] = cfg.aws.region in REGIONS
    if not out["checks"]["region_known"] and not cfg.aws.endpoint:
        out["warnings"].append(f"region_unknown: {cfg.aws.region}")

    local_root = Path(cfg.sync.local_root).expanduser()
    out["checks"]["local_root_exists"] = local_root.is_dir()
    if not out["checks"]["local_root_exists"]:
        out["errors"].append(f"local_root_missing: {local_root}")

    if not cfg.key_prefix():
        out["warnings"].append("prefix_blank: the whole bucket is synced")
    if cfg.sync.direction is SyncDirection.FROM_REMOTE and not cfg.sync.local_file_protection:
        out["warnings"].append("local_deletions_enabled: local files missing remotely will be trashed")

    out["ok"] = len(out["errors"]) == 0
    _print_json(out)
    if strict and not out["ok"]:
        raise typer.Exit(2)


def main():
    logging.captureWarnings(True)
    app()


if __name__ == "__main__":
    main()
