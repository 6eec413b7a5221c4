import os

from dotenv import find_dotenv, load_dotenv

from zoho_bookkeeper.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"
CACHE_FILENAME = "cache.json"

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ZOHO_REGION = "com"
DEFAULT_VENDOR_MATCH_THRESHOLD = 90.0

_CONFIG_FILE_PATH: str | None = None
_CONFIG_FILE_VALUES: dict[str, str] = {}
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "ZOHO_REGION",
    "ZOHO_BASE_URL",
    "ZOHO_ORGANIZATION_ID",
    "ZOHO_ACCESS_TOKEN",
    "ZOHO_ACCOUNTS_TTL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "BOOKKEEPER_CATEGORIES",
    "DRY_RUN",
    "VENDOR_MATCH_THRESHOLD",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _config_candidates(filename: str) -> list[str]:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return [os.path.join(config_dir, filename)]
    cwd = os.getcwd()
    return [os.path.join(cwd, "config", filename), os.path.join(cwd, filename)]


def _resolve_dotenv_path() -> str | None:
    for candidate in _config_candidates(".env"):
        if os.path.exists(candidate):
            return candidate
    return find_dotenv(usecwd=True) or None


def _resolve_config_path() -> str:
    candidates = _config_candidates(CONFIG_FILENAME)
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return candidates[-1]


def _clean_value(raw_value: str) -> str:
    """
    Drop a trailing ``# comment`` and one level of matching quotes.

    A ``#`` inside quotes is part of the value. Backslash escapes the next
    character inside a quoted value.
    """
    text = raw_value.strip()
    if text[:1] in {'"', "'"}:
        quote = text[0]
        chars: list[str] = []
        index = 1
        while index < len(text):
            char = text[index]
            if char == "\\" and index + 1 < len(text):
                chars.append(text[index + 1])
                index += 2
                continue
            if char == quote:
                return "".join(chars)
            chars.append(char)
            index += 1
        # unterminated quote, keep it literally
        return text

    comment_at = text.find("#")
    if comment_at != -1:
        text = text[:comment_at]
    return text.strip()


def read_config_file(path: str | None) -> dict[str, str]:
    """Read a flat ``KEY: value`` file. Blank values and comments are ignored."""
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            key, sep, raw_value = line.strip().partition(":")
            key = key.strip()
            if not sep or not key or key.startswith("#"):
                continue
            value = _clean_value(raw_value)
            if value:
                values[key] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH
    global _CONFIG_FILE_VALUES
    global _EXTERNAL_ENV_KEYS

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _EXTERNAL_ENV_KEYS = set(os.environ.keys())

    _CONFIG_FILE_PATH = _resolve_config_path()
    _CONFIG_FILE_VALUES = read_config_file(_CONFIG_FILE_PATH)

    for key in _CONFIG_KEYS:
        if key not in os.environ and key in _CONFIG_FILE_VALUES:
            os.environ[key] = _CONFIG_FILE_VALUES[key]


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def ensure_dirs(*paths: str | None) -> None:
    for path in paths:
        ensure_dir(path)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(name: str, default: float = 0.0) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %.2f.", name, raw, default)
        return default


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
    return default


def get_env_list(name: str) -> list[str]:
    """Comma separated values, stripped and de-duplicated in order."""
    raw = os.getenv(name) or ""
    return list(dict.fromkeys(part.strip() for part in raw.split(",") if part.strip()))


_SECRET_NAME_MARKERS = ("KEY", "TOKEN", "SECRET", "PASSWORD", "PASS", "AUTH", "BEARER", "PRIVATE")
_SECRET_VALUE_PREFIXES = ("sk-", "rk-", "Bearer ", "bearer ", "Zoho-oauthtoken ", "1000.")


def _looks_secret(name: str, value: str) -> bool:
    upper_name = name.upper()
    if any(marker in upper_name for marker in _SECRET_NAME_MARKERS):
        return True
    if value.startswith(_SECRET_VALUE_PREFIXES):
        return True
    # JWT
    return value.startswith("eyJ") and value.count(".") == 2


def mask_env_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not _looks_secret(name, sanitized):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Configuration file: %s", _CONFIG_FILE_PATH or "<none>")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        if raw_value is None:
            value = "<unset>"
        else:
            value = mask_env_value(key, raw_value)
            if not is_env_override(key) and key in _CONFIG_FILE_VALUES:
                value = f"{value} (config file)"
        logger.info("[ENV] %s=%s", key, value)


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR")
CONFIG_DIR = os.getenv("CONFIG_DIR")

ensure_dirs(DATA_DIR, LOG_DIR, CONFIG_DIR)
