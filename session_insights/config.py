"""Session Insights configuration."""
import hashlib
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Aggregation
RETENTION_DAYS = _env_int("INSIGHTS_RETENTION_DAYS", 30)
SESSION_FILE_PREFIX = "session-"
SESSION_FILE_SUFFIX = ".json"

# Sampling
SAMPLE_SIZE = _env_int("INSIGHTS_SAMPLE_SIZE", 15)

# Report output
TEMPLATE_PATH = os.getenv("INSIGHTS_TEMPLATE_PATH", "")
REPORT_PATH = os.getenv("INSIGHTS_REPORT_PATH", "")

# Logging
LOG_LEVEL = os.getenv("INSIGHTS_LOG_LEVEL", "INFO")

# Observability
OTEL_ENABLED = _env_bool("INSIGHTS_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("INSIGHTS_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("INSIGHTS_OTEL_SERVICE_NAME", "session-insights")


def gemini_home() -> Path:
    """Root of the conventional `.gemini` layout, honoring GEMINI_CLI_HOME."""
    cli_home = os.getenv("GEMINI_CLI_HOME")
    if cli_home:
        return Path(cli_home) / ".gemini"
    return Path.home() / ".gemini"


def resolve_session_dir() -> Path | None:
    """Return the session log root, or None when no candidate exists."""
    env_path = os.getenv("GEMINI_SESSION_DIR")
    if env_path and Path(env_path).exists():
        return Path(env_path)

    home_tmp = gemini_home() / "tmp"
    if home_tmp.exists():
        return home_tmp
    return None


def resolve_cache_dir() -> Path:
    """Return (and create) the durable cache root for facets and run state."""
    env_cache = os.getenv("INSIGHTS_CACHE_DIR")
    cache_path = Path(env_cache) if env_cache else gemini_home() / "cache" / "insights-extension"
    cache_path.mkdir(parents=True, exist_ok=True)
    return cache_path


def resolve_temp_dir() -> Path:
    """Return (and create) the scratch directory for pass artifacts.

    Prefers the CLI-authorized workspace in GEMINI_TEMP_DIR, then the
    INSIGHTS_TEMP_DIR override, then a per-project directory keyed by a hash
    of the current working directory.
    """
    cli_temp = os.getenv("GEMINI_TEMP_DIR")
    if cli_temp and Path(cli_temp).exists():
        return Path(cli_temp)

    env_temp = os.getenv("INSIGHTS_TEMP_DIR")
    if env_temp:
        temp_path = Path(env_temp)
    else:
        digest = hashlib.sha256(str(Path.cwd()).encode("utf-8")).hexdigest()
        temp_path = gemini_home() / "tmp" / "insights-extension" / digest
    temp_path.mkdir(parents=True, exist_ok=True)
    return temp_path
