from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

ENV_FILENAME = "env"

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_GENERATE_PATH = "/generate-game-real"
DEFAULT_HEALTH_PATH = "/health"
DEFAULT_USER_ID = "maya_user"
DEFAULT_CONNECT_TIMEOUT_S = 10.0


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    generate_path: str = DEFAULT_GENERATE_PATH
    health_path: str = DEFAULT_HEALTH_PATH
    user_id: str = DEFAULT_USER_ID
    # None disables the read timeout: generation streams can stay quiet for a long time.
    timeout_s: float | None = None
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S
    trace_enabled: bool = False
    trace_dir: Path | None = None

    @property
    def generate_url(self) -> str:
        return _join_url(self.base_url, self.generate_path)

    @property
    def health_url(self) -> str:
        return _join_url(self.base_url, self.health_path)

    def validate(self) -> None:
        if not self.base_url.strip():
            raise ConfigError("base_url must not be empty.")
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"base_url must start with http:// or https://: {self.base_url!r}")
        if not self.user_id.strip():
            raise ConfigError("user_id must not be empty.")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ConfigError(f"timeout_s must be positive: {self.timeout_s}")
        if self.connect_timeout_s <= 0:
            raise ConfigError(f"connect_timeout_s must be positive: {self.connect_timeout_s}")


def _join_url(base_url: str, path: str) -> str:
    if not path:
        return base_url.rstrip("/")
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def parse_env_text(raw: str) -> dict[str, str]:
    env: dict[str, str] = {}
    for line_no, line in enumerate(raw.splitlines(), start=1):
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        if s.startswith("export "):
            s = s[len("export ") :].lstrip()
        if "=" not in s:
            raise ConfigError(f"Invalid env line (missing '=') at line {line_no}")
        key, value = s.split("=", 1)
        key = key.strip()
        if not key:
            raise ConfigError(f"Invalid env line (empty key) at line {line_no}")
        value = value.strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        env[key] = value
    return env


def _maybe_bool_env(value: str | None, *, key: str) -> bool | None:
    if value is None or value == "":
        return None
    v = value.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    raise ConfigError(f"Invalid boolean for {key}: {value!r}")


def _maybe_float_env(value: str | None, *, key: str) -> float | None:
    if value is None or value.strip() == "":
        return None
    try:
        return float(value)
    except ValueError as e:
        raise ConfigError(f"Invalid number for {key}: {value!r}") from e


def default_global_env_path() -> Path:
    override = os.environ.get("VIBEPLAY_GLOBAL_ENV_PATH")
    if override:
        return Path(os.path.expanduser(override))
    return Path.home() / ".vibeplay" / "config" / ENV_FILENAME


def project_env_path(project_root: Path) -> Path:
    return project_root / ".vibeplay" / "config" / ENV_FILENAME


def discover_project_root(start_dir: Path) -> Path | None:
    current = start_dir.resolve()
    while True:
        if (current / ".vibeplay").is_dir():
            return current
        if current.parent == current:
            return None
        current = current.parent


def read_env_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read env file: {path} ({e})") from e
    try:
        return parse_env_text(raw)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e


def apply_env(config: ClientConfig, env: Mapping[str, str], *, project_root: Path | None = None) -> ClientConfig:
    patch: dict[str, object] = {}
    for key, attr in (
        ("VIBEPLAY_BASE_URL", "base_url"),
        ("VIBEPLAY_GENERATE_PATH", "generate_path"),
        ("VIBEPLAY_HEALTH_PATH", "health_path"),
        ("VIBEPLAY_USER_ID", "user_id"),
    ):
        value = env.get(key)
        if value is not None and value.strip() != "":
            patch[attr] = value.strip()

    timeout_s = _maybe_float_env(env.get("VIBEPLAY_TIMEOUT_S"), key="VIBEPLAY_TIMEOUT_S")
    if timeout_s is not None:
        patch["timeout_s"] = timeout_s
    connect_timeout_s = _maybe_float_env(env.get("VIBEPLAY_CONNECT_TIMEOUT_S"), key="VIBEPLAY_CONNECT_TIMEOUT_S")
    if connect_timeout_s is not None:
        patch["connect_timeout_s"] = connect_timeout_s
    trace_enabled = _maybe_bool_env(env.get("VIBEPLAY_TRACE_STREAM"), key="VIBEPLAY_TRACE_STREAM")
    if trace_enabled is not None:
        patch["trace_enabled"] = trace_enabled

    trace_dir = env.get("VIBEPLAY_TRACE_STREAM_DIR")
    if trace_dir is not None and trace_dir.strip() != "":
        path = Path(os.path.expanduser(trace_dir.strip()))
        if not path.is_absolute() and project_root is not None:
            path = project_root / path
        patch["trace_dir"] = path

    return replace(config, **patch) if patch else config


def load_client_config(
    *,
    start_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ClientConfig:
    """
    Layered config: defaults, global env file, project env file, then the process environment.
    """

    environ = os.environ if environ is None else environ
    project_root = discover_project_root(start_dir or Path.cwd())

    config = ClientConfig()
    config = apply_env(config, read_env_file(default_global_env_path()), project_root=project_root)
    if project_root is not None:
        config = apply_env(config, read_env_file(project_env_path(project_root)), project_root=project_root)
    config = apply_env(config, environ, project_root=project_root)

    if config.trace_enabled and config.trace_dir is None:
        root = project_root if project_root is not None else Path.cwd()
        config = replace(config, trace_dir=root / ".vibeplay" / "cache" / "stream_trace")
    config.validate()
    return config
