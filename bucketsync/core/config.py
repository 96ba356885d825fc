from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from bucketsync.sync.models import SyncDirection, SyncPolicy

MIB = 1024 * 1024
GIB = 1024 * MIB

VAULT_NAME_PLACEHOLDER = "%VAULT_NAME%"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
HOME_DIR = Path.home() / ".bucketsync"
RUNTIME_DIR = HOME_DIR / "runtime"
DEFAULT_CONFIG_PATH = HOME_DIR / "config.yaml"
DEFAULT_CONFIG_TEMPLATE_PATH = PROJECT_ROOT / "config.yaml.example"


class AwsConfig(BaseModel):
    # Named profile from ~/.aws/credentials
    profile: str = "default"
    region: str = "us-east-1"
    # Custom endpoint for S3-compatible providers; blank means AWS.
    endpoint: str = ""


class BucketConfig(BaseModel):
    name: str = ""
    path_prefix: str = f"/{VAULT_NAME_PLACEHOLDER}/"

    def resolved_prefix(self, local_root: str) -> str:
        return normalize_prefix(self.path_prefix, Path(local_root).expanduser().name)


class SyncConfig(BaseModel):
    local_root: str = str(Path.home() / "vault")
    # Source of truth for files that exist on only one side.
    direction: SyncDirection = SyncDirection.FROM_LOCAL
    # Never delete local files, even when the remote side is the source of truth.
    local_file_protection: bool = True
    page_size: int = Field(default=1000, ge=1, le=1000)
    # Listing stops after this many pages even when a cursor remains.
    max_pages: int = Field(default=10, ge=1)
    batch_size: int = Field(default=10, ge=1)
    fingerprint_max_bytes: int = Field(default=500 * MIB, ge=0)
    fingerprint_concurrency: int = Field(default=64, ge=1)
    # Single-part upload ceiling; larger local-only files are skipped.
    single_part_max_bytes: int = Field(default=GIB, ge=0)
    settle_delay_sec: float = Field(default=1.0, ge=0)
    auto_sync: bool = False
    auto_sync_debounce: float = Field(default=2, ge=0)
    auto_pull: bool = False
    auto_pull_interval: int = Field(default=300, ge=1, le=86400)
    watch_poll_interval: float = Field(default=5, gt=0)
    trash_dir: str = ".sync_trash"
    exclude_dirs: list[str] = Field(default_factory=lambda: [".git", "__pycache__"])

    def policy(self) -> SyncPolicy:
        return SyncPolicy(direction=self.direction, local_protection=self.local_file_protection)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = str(RUNTIME_DIR / "service.log")


class AppConfig(BaseModel):
    aws: AwsConfig = Field(default_factory=AwsConfig)
    bucket: BucketConfig = Field(default_factory=BucketConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def key_prefix(self) -> str:
        return self.bucket.resolved_prefix(self.sync.local_root)


def normalize_prefix(prefix: str, vault_name: str) -> str:
    """Bucket key prefix without a leading slash and with a trailing one.

    A blank prefix stays blank so the whole bucket is used.
    """
    raw = (prefix or "").strip().replace(VAULT_NAME_PLACEHOLDER, vault_name)
    raw = raw.lstrip("/")
    if not raw:
        return ""
    if not raw.endswith("/"):
        raw += "/"
    return raw


def ensure_runtime_dirs(cfg: AppConfig):
    Path(cfg.logging.file).parent.mkdir(parents=True, exist_ok=True)


def _dump(cfg: AppConfig) -> str:
    import yaml

    return yaml.safe_dump(cfg.model_dump(mode="json"), allow_unicode=True, sort_keys=False)


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    import yaml

    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        if DEFAULT_CONFIG_TEMPLATE_PATH.exists():
            try:
                template_text = DEFAULT_CONFIG_TEMPLATE_PATH.read_text(encoding="utf-8")
                data = yaml.safe_load(template_text) or {}
                cfg = AppConfig.model_validate(data)
                path.write_text(template_text, encoding="utf-8")
            except Exception:
                cfg = AppConfig()
                path.write_text(_dump(cfg), encoding="utf-8")
        else:
            cfg = AppConfig()
            path.write_text(_dump(cfg), encoding="utf-8")
        ensure_runtime_dirs(cfg)
        return cfg

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    cfg = AppConfig.model_validate(data)
    ensure_runtime_dirs(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path = DEFAULT_CONFIG_PATH):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_dump(cfg), encoding="utf-8")
