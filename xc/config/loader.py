"""
Configuration management and loading.

Resolves the config directory and loads optional client settings.
"""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from xc.core.errors import ConfigError


DEFAULT_API_BASE = "https://api.x.com/2"
DEFAULT_TOKEN_URL = "https://api.x.com/2/oauth2/token"
DEFAULT_AUTHORIZE_URL = "https://x.com/i/oauth2/authorize"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CALLBACK_PORT = 3391


@dataclass(frozen=True)
class ConfigContext:
    """Resolved location of every file xc reads or writes.

    Passed explicitly to all core operations; nothing below the CLI reads
    the process environment.
    """
    config_dir: Path

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ConfigContext":
        """Resolve the directory from XC_CONFIG_DIR, then XDG_CONFIG_HOME/xc,
        then ~/.config/xc."""
        env = os.environ if env is None else env
        explicit = env.get("XC_CONFIG_DIR")
        if explicit:
            return cls(Path(explicit))
        xdg = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
        return cls(Path(xdg) / "xc")

    @property
    def config_path(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def budget_path(self) -> Path:
        return self.config_dir / "budget.json"

    @property
    def usage_path(self) -> Path:
        return self.config_dir / "usage.jsonl"

    @property
    def settings_path(self) -> Path:
        return self.config_dir / "settings.yaml"

    def ensure_dir(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class Settings:
    """Endpoints and network knobs for the API client."""
    api_base: str = DEFAULT_API_BASE
    token_url: str = DEFAULT_TOKEN_URL
    authorize_url: str = DEFAULT_AUTHORIZE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    callback_port: int = DEFAULT_CALLBACK_PORT

    def __post_init__(self):
        """Validate network values are usable."""
        if self.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be > 0")
        if not 1 <= self.callback_port <= 65535:
            raise ConfigError("callback_port must be between 1 and 65535")


_URL_KEYS = {'api_base', 'token_url', 'authorize_url'}


def load_settings(ctx: ConfigContext) -> Settings:
    """Load and validate settings.yaml from the config directory.

    The file is optional. When it exists it is validated strictly so a typo
    never silently points the client at the wrong host.

    Args:
        ctx: Config context locating settings.yaml

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If the YAML is invalid or contains bad values
    """
    path = ctx.settings_path
    if not path.exists():
        return Settings()

    with open(path, 'r', encoding='utf-8') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in settings file {path}: {e}")

    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        raise ConfigError("Settings file must contain a mapping")

    allowed_keys = _URL_KEYS | {'timeout_seconds', 'callback_port'}
    unknown_keys = set(raw.keys()) - allowed_keys
    if unknown_keys:
        raise ConfigError(f"Unknown settings keys: {sorted(unknown_keys)}")

    values: Dict[str, Any] = {}
    for key in _URL_KEYS & raw.keys():
        value = raw[key]
        if not isinstance(value, str) or not value.startswith(("http://", "https://")):
            raise ConfigError(f"'{key}' must be an http(s) URL")
        values[key] = value.rstrip("/")

    if 'timeout_seconds' in raw:
        timeout = raw['timeout_seconds']
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ConfigError("'timeout_seconds' must be a number")
        values['timeout_seconds'] = float(timeout)

    if 'callback_port' in raw:
        port = raw['callback_port']
        if isinstance(port, bool) or not isinstance(port, int):
            raise ConfigError("'callback_port' must be an integer")
        values['callback_port'] = port

    return Settings(**values)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write pretty-printed JSON with a trailing newline via temp file + rename.

    Readers in the same or another process see either the old file or the
    new one, never a partial write. Concurrent writers are last-writer-wins.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(json.dumps(data, indent=2) + "\n")
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def read_json(path: Path) -> Any:
    """Read a JSON file, raising ConfigError on malformed content."""
    with open(path, 'r', encoding='utf-8') as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}")
