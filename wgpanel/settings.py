import os
from dataclasses import dataclass, field
from pathlib import Path

from .restart import DEFAULT_RESTART_TIMEOUT, parse_names

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3003


def load_dotenv(path):
    if not path.exists() or not path.is_file():
        return

    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export ") :].strip()
        if not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def env_float(environ, key, default):
    raw = str(environ.get(key, "")).strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{key} must be positive")
    return value


def env_port(environ, key, default):
    raw = str(environ.get(key, "")).strip()
    if not raw:
        return default
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")
    if port < 0 or port > 65535:
        raise ValueError(f"{key} must be between 0 and 65535")
    return port


@dataclass
class Settings:
    wireguard_dir: Path | None = None
    dependents: list = field(default_factory=list)
    restart_backend: str = "docker"
    restart_timeout: float = DEFAULT_RESTART_TIMEOUT
    history_dir: Path = Path("config/history")
    locations_file: Path = Path("config/locations.json")
    static_dir: Path | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    auth_username: str = ""
    auth_password: str = ""
    log_level: str = "INFO"

    @property
    def auth_enabled(self):
        return bool(self.auth_username and self.auth_password)

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        wireguard_dir = env.get("WIREGUARD_DIR", "").strip()
        static_dir = env.get("WGPANEL_STATIC_DIR", "").strip()
        return cls(
            wireguard_dir=Path(wireguard_dir) if wireguard_dir else None,
            dependents=parse_names(env.get("CONTAINER_TO_RESTART", "")),
            restart_backend=env.get("RESTART_BACKEND", "docker").strip().lower() or "docker",
            restart_timeout=env_float(env, "RESTART_TIMEOUT", DEFAULT_RESTART_TIMEOUT),
            history_dir=Path(env.get("WGPANEL_HISTORY_DIR", "").strip() or "config/history"),
            locations_file=Path(env.get("WGPANEL_LOCATIONS_FILE", "").strip() or "config/locations.json"),
            static_dir=Path(static_dir) if static_dir else None,
            host=env.get("WGPANEL_HOST", "").strip() or DEFAULT_HOST,
            port=env_port(env, "WGPANEL_PORT", DEFAULT_PORT),
            auth_username=env.get("WGPANEL_USER", "").strip(),
            auth_password=env.get("WGPANEL_PASS", ""),
            log_level=env.get("WGPANEL_LOG_LEVEL", "").strip().upper() or "INFO",
        )


def load_settings(dotenv_path=None):
    load_dotenv(Path(dotenv_path) if dotenv_path else Path.cwd() / ".env")
    return Settings.from_env()
