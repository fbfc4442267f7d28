import datetime
import json
import logging
import os
import traceback
from typing import Any, Dict, Optional

import yaml
from colorama import Fore, init

# Levels reported by the JSON sink. Anything else is folded into one of these.
JSON_LEVEL_NAMES = {
    "DEBUG": "INFO",
    "INFO": "INFO",
    "WARNING": "WARN",
    "ERROR": "ERROR",
    "CRITICAL": "ERROR",
}

DEFAULT_CONFIG_FILE = "config.yml"


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to log messages based on severity level."""

    def format(self, record):
        LOG_COLORS = {
            "DEBUG": Fore.CYAN,
            "INFO": Fore.GREEN,
            "WARNING": Fore.YELLOW,
            "ERROR": Fore.RED,
            "CRITICAL": Fore.RED + "\033[1m",
        }
        log_color = LOG_COLORS.get(record.levelname, Fore.WHITE)

        timestamp = datetime.datetime.fromtimestamp(
            record.created).strftime('%H:%M:%S')
        message = record.getMessage()

        context = getattr(record, "context", None)
        if context:
            message = f"{message} {_dump_context(context)}"

        # Display: [HH:MM:SS] LEVEL    [file:line] - message
        return f"{log_color}[{timestamp}] {record.levelname:<8} [{record.filename}:{record.lineno}] {Fore.RESET}- {message}"


class JsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Output shape: {"timestamp", "level", "message", "context"?}. The context
    is taken from ``extra={"context": {...}}`` and dropped when empty.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.datetime.fromtimestamp(
                record.created, tz=datetime.timezone.utc
            ).isoformat().replace("+00:00", "Z"),
            "level": JSON_LEVEL_NAMES.get(record.levelname, "INFO"),
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        if record.exc_info:
            exc = record.exc_info[1]
            context.setdefault("error", str(exc))
            context.setdefault("stack", "".join(traceback.format_exception(*record.exc_info)))

        if context:
            entry["context"] = context

        return json.dumps(entry, default=str, ensure_ascii=False)


def _dump_context(context: Dict[str, Any]) -> str:
    try:
        return json.dumps(context, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(context)


def get_config_file() -> str:
    """
    Get the configuration file path.

    Returns:
        str: Path from RELAY_CONFIG, or config.yml in the working directory
    """
    return os.getenv("RELAY_CONFIG", DEFAULT_CONFIG_FILE)


def load_config() -> Dict[str, Any]:
    """
    Loads configuration from the YAML file without using logging.

    Returns:
        Dict[str, Any]: Configuration data, empty if the file is missing or invalid
    """
    try:
        with open(get_config_file(), "r", encoding="utf-8") as file:
            data = yaml.safe_load(file)
    except (OSError, yaml.YAMLError):
        data = {}
    return data if isinstance(data, dict) else {}


def setup_logging(debug_mode: bool = False, log_format: str = "json",
                  log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures logging: a console handler and an optional file handler.

    Args:
        debug_mode (bool): Whether to enable debug logging to console
        log_format (str): "json" for structured lines, "color" for the colored console format
        log_file (Optional[str]): Also write plain-text logs to this file

    Returns:
        logging.Logger: Configured root logger
    """
    init(autoreset=True)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug_mode else logging.INFO)
    if log_format == "color":
        console_handler.setFormatter(ColoredFormatter())
    else:
        console_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("[%(filename)s] %(levelname)s : %(message)s"))
        root_logger.addHandler(file_handler)

    # Silence noisy third-party libraries
    logging.getLogger("discord").setLevel(logging.INFO)
    logging.getLogger("discord.http").setLevel(logging.WARNING)
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    return root_logger


def _section(name: str) -> Dict[str, Any]:
    section = config_yaml.get(name)
    return section if isinstance(section, dict) else {}


def get_discord_token() -> Optional[str]:
    """
    Get the bot token, preferring the DISCORD_TOKEN environment variable.

    Returns:
        Optional[str]: Token or None if not configured
    """
    return os.getenv("DISCORD_TOKEN") or _section("Discord").get("token") or None


def get_embed_settings() -> Dict[str, Any]:
    """
    Get embed styling used by slash command replies.

    Returns:
        Dict[str, Any]: {"color": int, "thumbnail": Optional[str]}
    """
    discord_section = _section("Discord")
    return {
        "color": int(discord_section.get("embed_color", 0x0099FF)),
        "thumbnail": discord_section.get("thumbnail") or None,
    }


def get_cache_ttl() -> Optional[float]:
    """
    Get the default TTL (seconds) for per-guild cache entries.

    CACHE_TTL in the environment overrides the config file. A configured
    value of null disables expiration.

    Returns:
        Optional[float]: TTL in seconds, or None for no expiration
    """
    env_value = os.getenv("CACHE_TTL")
    if env_value:
        try:
            return float(env_value)
        except ValueError:
            log.warning("Ignoring invalid CACHE_TTL value %r", env_value)

    cache_section = _section("Cache")
    if "ttl_seconds" in cache_section and cache_section["ttl_seconds"] is None:
        return None
    return float(cache_section.get("ttl_seconds", 60.0))


def get_delivery_settings() -> Dict[str, Any]:
    """
    Get webhook delivery retry settings.

    Returns:
        Dict[str, Any]: retries, initial_delay (seconds) and timeout (seconds)
    """
    delivery = _section("Delivery")
    return {
        "retries": int(delivery.get("retries", 3)),
        "initial_delay": float(delivery.get("initial_delay", 1.0)),
        "timeout": float(delivery.get("timeout", 10.0)),
    }


def get_storage_file() -> str:
    """
    Get the storage file path from configuration.

    Returns:
        str: Path to the JSON storage file
    """
    return _section("Storage").get("data_file", "data/relay.json")


def get_health_settings() -> Dict[str, Any]:
    """
    Get health check server settings.

    Returns:
        Dict[str, Any]: enabled, host and port
    """
    health = _section("Health")
    return {
        "enabled": bool(health.get("enabled", True)),
        "host": health.get("host", "0.0.0.0"),
        "port": int(health.get("port", 8080)),
    }


# First, load the configuration without logging to avoid premature logger creation
config_yaml = load_config()
debug_mode = _section("Options").get("debug_mode", False)

# Next, configure logging
log = setup_logging(
    debug_mode,
    log_format=_section("Logging").get("format", "json"),
    log_file=_section("Logging").get("file"),
)
