"""Configuration persistence: session config, project config.json, logging."""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from models import DEFAULT_PERIOD, GRADE_CATEGORIES, PERIODS

logger = logging.getLogger("gradebook")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

ENV_API_URL = "GRADEBOOK_API_URL"
ENV_API_TOKEN = "GRADEBOOK_API_TOKEN"


# ── App-level session config (persists which project dir was last opened) ─────

_APP_DIR = os.path.dirname(os.path.abspath(__file__))
_APP_DATA_DIR = os.path.join(os.path.dirname(_APP_DIR), "data")
SESSION_CONFIG_PATH = os.path.join(_APP_DATA_DIR, "session_config.json")

# ── Project-dir-derived paths (set via set_project_dir) ──────────────────────

_active_project_dir: Optional[str] = None
EXPORT_DIR: str = ""


@dataclass
class GradebookSettings:
    base_url: str = "http://localhost:5000"
    token: Optional[str] = None
    timeout: float = 10.0
    group_id: int = 0
    group_name: str = "Grupo"
    subject_id: int = 0
    subject_name: str = "Materia"
    rubrics: List[str] = field(default_factory=lambda: list(GRADE_CATEGORIES))
    periods: List[str] = field(default_factory=lambda: list(PERIODS))
    default_period: str = DEFAULT_PERIOD
    export_dir: str = "export"
    debug_mode: bool = False


# ── Logging ───────────────────────────────────────────────────────────────────

def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT)


def set_debug(enabled: bool) -> None:
    logging.getLogger().setLevel(logging.DEBUG if enabled else logging.INFO)


def dbg(msg: str) -> None:
    logger.debug(msg)


# ── Project directory ─────────────────────────────────────────────────────────

def set_project_dir(project_dir: str, export_dir: str = "export") -> None:
    """Configure export paths to use *project_dir* as the root."""
    global _active_project_dir, EXPORT_DIR
    _active_project_dir = os.path.abspath(project_dir)
    EXPORT_DIR = os.path.join(_active_project_dir, export_dir)


def get_project_dir() -> Optional[str]:
    return _active_project_dir


def ensure_export_dir() -> str:
    if not _active_project_dir:
        raise RuntimeError(
            "data_store.ensure_export_dir() called before set_project_dir(). "
            "Open a project first."
        )
    os.makedirs(EXPORT_DIR, exist_ok=True)
    return EXPORT_DIR


# ── Session config ────────────────────────────────────────────────────────────

def load_session_config() -> Optional[dict]:
    if not os.path.exists(SESSION_CONFIG_PATH):
        return None
    with open(SESSION_CONFIG_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


def save_session_config(project_dir: str):
    os.makedirs(os.path.dirname(SESSION_CONFIG_PATH), exist_ok=True)
    config = {"project_dir": os.path.abspath(project_dir)}
    with open(SESSION_CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)


# ── Project config.json ───────────────────────────────────────────────────────

def load_project_config(project_dir: str) -> dict:
    """Read *project_dir*/config.json and return the raw dict."""
    path = os.path.join(project_dir, "config.json")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_project_config(project_dir: str, config_data: dict) -> None:
    """Write *config_data* back to *project_dir*/config.json."""
    path = os.path.join(project_dir, "config.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config_data, f, indent=2, ensure_ascii=False)
        f.write("\n")


def load_settings_from_config(config_data: dict) -> GradebookSettings:
    """Build GradebookSettings from a parsed config dict; env vars win for the server."""
    defaults = GradebookSettings()
    server = config_data.get("server", {})
    group = config_data.get("group", {})
    subject = config_data.get("subject", {})
    raw_token = os.environ.get(ENV_API_TOKEN) or server.get("token")
    periods = list(config_data.get("periods") or defaults.periods)
    default_period = config_data.get("default_period", defaults.default_period)
    if default_period not in periods:
        default_period = periods[0]
    return GradebookSettings(
        base_url=str(os.environ.get(ENV_API_URL) or server.get("base_url", defaults.base_url)),
        token=raw_token or None,
        timeout=float(server.get("timeout", defaults.timeout)),
        group_id=int(group.get("id", defaults.group_id)),
        group_name=str(group.get("name", defaults.group_name)),
        subject_id=int(subject.get("id", defaults.subject_id)),
        subject_name=str(subject.get("name", defaults.subject_name)),
        rubrics=list(config_data.get("rubrics") or defaults.rubrics),
        periods=periods,
        default_period=default_period,
        export_dir=str(config_data.get("export_dir", defaults.export_dir)),
        debug_mode=bool(config_data.get("debug_mode", defaults.debug_mode)),
    )


def settings_problems(settings: GradebookSettings) -> List[str]:
    """Reasons *settings* cannot be used to open the grade table; empty when fine."""
    problems = []
    if not settings.base_url.startswith(("http://", "https://")):
        problems.append("server.base_url must start with http:// or https://")
    if settings.group_id <= 0:
        problems.append("group.id must be a positive number")
    if settings.subject_id <= 0:
        problems.append("subject.id must be a positive number")
    return problems


def inspect_project(project_dir: str) -> Tuple[Optional[GradebookSettings], List[str]]:
    """Read *project_dir*/config.json and report what is wrong with it, if anything."""
    if not os.path.isdir(project_dir):
        return None, ["Project directory does not exist."]
    try:
        config_data = load_project_config(project_dir)
    except FileNotFoundError:
        return None, ["Missing 'config.json' inside the project directory."]
    except (OSError, ValueError) as exc:
        return None, [f"config.json could not be read: {exc}"]
    if not isinstance(config_data, dict):
        return None, ["config.json must contain a JSON object."]
    try:
        settings = load_settings_from_config(config_data)
    except (ValueError, TypeError, AttributeError) as exc:
        return None, [f"config.json has an invalid value: {exc}"]
    return settings, settings_problems(settings)


def save_settings_to_config(config_data: dict, settings: GradebookSettings) -> None:
    """Write *settings* into *config_data* in-place (call save_project_config to persist).

    Server values that came from the environment are not written; the file
    keeps whatever it had.
    """
    old_server = config_data.get("server", {})
    base_url, token = settings.base_url, settings.token
    env_url = os.environ.get(ENV_API_URL)
    if env_url and base_url == env_url:
        base_url = old_server.get("base_url", GradebookSettings.base_url)
    env_token = os.environ.get(ENV_API_TOKEN)
    if env_token and token == env_token:
        token = old_server.get("token")
    config_data["server"] = {
        "base_url": base_url,
        "token": token,
        "timeout": settings.timeout,
    }
    config_data["group"] = {"id": settings.group_id, "name": settings.group_name}
    config_data["subject"] = {"id": settings.subject_id, "name": settings.subject_name}
    config_data["rubrics"] = list(settings.rubrics)
    config_data["periods"] = list(settings.periods)
    config_data["default_period"] = settings.default_period
    config_data["export_dir"] = settings.export_dir
    config_data["debug_mode"] = settings.debug_mode
