# portsurgeon/core/config.py
from typing import Any, Dict, List
import yaml
import os
from dotenv import load_dotenv


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Loads configuration from environment variables (Priority 1) and 'config.yaml' (Priority 2).
    Missing keys fall back to the defaults declared on each property.
    """
    def __init__(self, config_path: str = "config.yaml") -> None:
        current_dir = os.path.dirname(os.path.abspath(__file__))
        project_root = os.path.abspath(os.path.join(current_dir, '..', '..'))
        env_path = os.path.join(project_root, '.env')

        if os.path.exists(env_path):
            load_dotenv(dotenv_path=env_path, override=True)
        else:
            load_dotenv(override=True)

        self.config_path = config_path
        self.data = self._load_yaml()

    def _load_yaml(self) -> Dict[str, Any]:
        if not os.path.exists(self.config_path):
            return {}
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError:
            return {}
        return data if isinstance(data, dict) else {}

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.data.get(name, {})
        return section if isinstance(section, dict) else {}

    def _number(self, section: str, key: str, default: float, env: str = "") -> float:
        raw = os.getenv(env) if env else None
        if raw is None:
            raw = self._section(section).get(key, default)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    # --- SERVER ---
    @property
    def server_host(self) -> str:
        return os.getenv("PORTSURGEON_HOST", self._section("server").get("host", "127.0.0.1"))

    @property
    def server_port(self) -> int:
        return int(self._number("server", "port", 7878, env="PORTSURGEON_PORT"))

    @property
    def tls_enabled(self) -> bool:
        return _to_bool(os.getenv("PORTSURGEON_TLS", self._section("server").get("tls", False)))

    @property
    def cert_dir(self) -> str:
        return self._section("server").get("cert_dir", "certs")

    # --- HISTORY ---
    @property
    def db_name(self) -> str:
        return os.getenv("PORTSURGEON_DB_NAME", self._section("history").get("db_name", "portsurgeon.db"))

    @property
    def history_limit(self) -> int:
        return int(self._number("history", "limit", 200))

    # --- CONTAINERS ---
    @property
    def container_runtime(self) -> str:
        return os.getenv("PORTSURGEON_CONTAINER_RUNTIME", self._section("containers").get("runtime", "docker"))

    @property
    def containers_enabled(self) -> bool:
        return _to_bool(self._section("containers").get("enabled", True))

    @property
    def container_timeout(self) -> float:
        return self._number("containers", "timeout", 10.0)

    # --- TERMINATION ---
    @property
    def graceful_timeout(self) -> float:
        return self._number("termination", "graceful_timeout", 5.0)

    @property
    def poll_interval(self) -> float:
        return self._number("termination", "poll_interval", 0.1)

    @property
    def extra_protected_names(self) -> List[str]:
        names = self._section("safety").get("protected_names", [])
        if not isinstance(names, list):
            return []
        return [str(n) for n in names if n]

    # --- SECRETS ---
    @property
    def api_token_hash(self) -> str:
        return os.getenv("PORTSURGEON_API_TOKEN_HASH", "")

    # --- LOGGING ---
    @property
    def log_file(self) -> str:
        return os.getenv("PORTSURGEON_LOG_FILE", self._section("logging").get("file", "portsurgeon_audit.log"))

    @property
    def log_level(self) -> str:
        level = str(os.getenv("PORTSURGEON_LOG_LEVEL", self._section("logging").get("level", "INFO"))).upper()
        return level if level in ("DEBUG", "INFO", "WARNING", "ERROR") else "INFO"
