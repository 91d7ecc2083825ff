import os
import re
import json
import datetime as dt
import logging
from logging.handlers import TimedRotatingFileHandler
from jsonschema import validate, Draft202012Validator
from jsonschema.exceptions import ValidationError
from typing import Optional, Any, Dict, List
from pydantic import TypeAdapter, HttpUrl

# ---------- Time helpers ----------

def parse_datetime_safe(raw: Any) -> Optional[dt.datetime]:
    """Best-effort parsing for timestamps sent by the stats service.

    Accepts epoch milliseconds (what the matrix endpoint sends), ISO 8601
    strings and datetimes. Returns a timezone-aware UTC datetime on success,
    otherwise ``None``.
    """

    if raw is None or raw == "":
        return None

    if isinstance(raw, dt.datetime):
        if raw.tzinfo is None:
            raw = raw.replace(tzinfo=dt.timezone.utc)
        return raw.astimezone(dt.timezone.utc)

    if isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        try:
            return dt.datetime.fromtimestamp(raw / 1000.0, tz=dt.timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    raw = str(raw).strip()
    if raw.lstrip("-").isdigit():
        return parse_datetime_safe(int(raw))

    # ISO 8601 (with optional trailing Z and fractional seconds)
    iso_candidate = raw
    if raw.endswith("Z"):
        iso_candidate = raw[:-1] + "+00:00"

    try:
        dt_obj = dt.datetime.fromisoformat(iso_candidate)
        if dt_obj.tzinfo is None:
            dt_obj = dt_obj.replace(tzinfo=dt.timezone.utc)
        return dt_obj.astimezone(dt.timezone.utc)
    except ValueError:
        pass

    for fmt in ("%Y-%m-%d %H:%M:%S%z", "%Y-%m-%d %H:%M:%S"):
        try:
            dt_obj = dt.datetime.strptime(raw, fmt)
            if dt_obj.tzinfo is None:
                dt_obj = dt_obj.replace(tzinfo=dt.timezone.utc)
            return dt_obj.astimezone(dt.timezone.utc)
        except ValueError:
            continue

    return None

def to_epoch_millis(value: Optional[dt.datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)

# ---------- URL helpers ----------

_HTTP_URL_ADAPTER = TypeAdapter(HttpUrl)

def normalize_http_url(value: Any) -> Optional[str]:
    """Try to normalize a value into a valid http(s) URL string.

    - Trims whitespace and trailing slashes
    - Adds scheme when missing (defaults to https://)
    - Supports protocol-relative form (//example.com)
    Returns normalized string on success; otherwise None.
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if s.startswith("//"):
        s = "https:" + s
    # If no scheme present, assume https
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", s):
        s = "https://" + s
    try:
        _HTTP_URL_ADAPTER.validate_python(s)
    except ValueError:
        return None
    return s.rstrip("/")

# ---------- Config validation ----------

def load_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()

def load_schema(name: str) -> dict:
    here = os.path.dirname(os.path.abspath(__file__))
    return json.loads(load_file(os.path.join(here, "schemas", name)))

def validate_against(instance: Any, schema_name: str, what: str = "Config"):
    schema = load_schema(schema_name)
    try:
        validate(instance=instance, schema=schema, cls=Draft202012Validator)
    except ValidationError as e:
        raise ValueError(f"{what} validation error: {e.message} at {list(e.path)}") from e

def validate_config(cfg: dict):
    validate_against(cfg, "config.schema.json", "Config")

def env_defaults() -> Dict[str, Any]:
    """Client/query defaults taken from PENGUIN_* environment variables."""
    client: Dict[str, Any] = {}
    query: Dict[str, Any] = {}
    if os.getenv("PENGUIN_BASE_URL"):
        client["base_url"] = os.environ["PENGUIN_BASE_URL"]
    if os.getenv("PENGUIN_TIMEOUT"):
        try:
            client["timeout"] = float(os.environ["PENGUIN_TIMEOUT"])
        except ValueError as e:
            raise ValueError(f"PENGUIN_TIMEOUT must be a number, got {os.environ['PENGUIN_TIMEOUT']!r}") from e
    if os.getenv("PENGUIN_SERVER"):
        query["server"] = os.environ["PENGUIN_SERVER"].upper()
    return {"client": client, "query": query}

# ---------- Output writer ----------

def _render_md(title: str, json_obj: Any) -> str:
    lines = [f"# {title}", ""]
    rows = json_obj if isinstance(json_obj, list) else [json_obj]
    for row in rows:
        if isinstance(row, dict):
            lines.append("- " + ", ".join(f"{k}: {v}" for k, v in row.items()))
        else:
            lines.append(f"- {row}")
    return "\n".join(lines) + "\n"

def write_output(name: str, json_obj: Any, out_cfg: dict) -> List[str]:
    out_dir = out_cfg["dir"]
    formats = out_cfg.get("formats") or ["json"]
    os.makedirs(out_dir, exist_ok=True)
    now_local = dt.datetime.now().astimezone()
    ts = now_local.strftime("%Y%m%dT%H%M%S%z")
    base = os.path.join(out_dir, f"{name}_{ts}")

    generated_files = []

    if "json" in formats:
        json_path = base + ".json"
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(json_obj, f, ensure_ascii=False, indent=2)
        generated_files.append(json_path)

    if "md" in formats:
        md_path = base + ".md"
        with open(md_path, "w", encoding="utf-8") as f:
            f.write(_render_md(name, json_obj))
        generated_files.append(md_path)

    return generated_files

# ---------- Logging ----------

_LOGGER_INITIALIZED = False
_PACKAGE_LOGGER = "penguin_stats"

class JsonFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "ts": dt.datetime.fromtimestamp(record.created, tz=dt.timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)

def _build_logger():
    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    # File logging only when a directory is given; a library should not write by default
    log_dir = os.getenv("LOG_DIR")
    json_mode = os.getenv("LOG_JSON", "false").lower() == "true"

    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level, logging.INFO))
    # handlers live on the package logger; keep records from reaching root twice
    logger.propagate = False

    if json_mode:
        fmt = JsonFormatter()
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")

    ch = logging.StreamHandler()
    ch.setLevel(logger.level)
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(os.path.join(log_dir, "penguin-stats.log"), when="D", backupCount=7, encoding="utf-8")
        fh.setLevel(logger.level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    _LOGGER_INITIALIZED = True

def get_logger(name: str = None) -> logging.Logger:
    _build_logger()
    return logging.getLogger(name if name else _PACKAGE_LOGGER)

# ---------- Secret redaction ----------

def redact_secrets(s: str) -> str:
    """Redact sensitive information from strings for safe logging."""
    if not s:
        return s

    redacted = s
    v = os.getenv("PENGUIN_USER_ID")
    if v and len(v) > 3:
        redacted = redacted.replace(v, "***")

    pattern_flags = re.IGNORECASE
    redacted = re.sub(r"(userID=)([^\s;&]+)", r"\1***", redacted, flags=pattern_flags)
    redacted = re.sub(r"(user_id=)([^\s;&]+)", r"\1***", redacted, flags=pattern_flags)
    redacted = re.sub(r"(token=)([^\s&]+)", r"\1***", redacted, flags=pattern_flags)
    redacted = re.sub(r"(bearer\s+)[A-Za-z0-9._-]+", r"\1***", redacted, flags=pattern_flags)

    return redacted
