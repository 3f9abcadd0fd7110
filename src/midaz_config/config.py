"""Midaz client resilience configuration from YAML and environment.

Loads from a single YAML file with a top-level ``midaz:`` section:

    midaz:
      retry:
        max_retries: 3
        initial_delay_ms: 100
        max_delay_ms: 1000
        retryable_status_codes: [408, 429, 500, 502, 503, 504]
      observability:
        enable_tracing: false
        enable_metrics: true
        service_name: midaz-python-sdk

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files. MIDAZ_* variables (optionally
from a .env file) override file values.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from midaz_core.resilience.retry import DEFAULT_RETRYABLE_STATUS_CODES, parse_status_codes
from midaz_core.telemetry import DEFAULT_SERVICE_NAME

logger = logging.getLogger(__name__)

# Looked up in the working directory when no path is given
DEFAULT_CONFIG_FILE = Path("midaz.yaml")
CONFIG_PATH_ENV = "MIDAZ_CONFIG_FILE"

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off", "")

_VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: '{value}'")


@dataclass
class RetryPolicyConfig:
    """Retry settings. Delays are in milliseconds."""

    max_retries: int = 3
    initial_delay_ms: float = 100
    max_delay_ms: float = 1000
    retryable_status_codes: List[int] = field(
        default_factory=lambda: sorted(DEFAULT_RETRYABLE_STATUS_CODES)
    )

    def __post_init__(self):
        """Coerce values that arrive as strings from YAML expansion or env vars."""
        self.max_retries = int(self.max_retries)
        self.initial_delay_ms = float(self.initial_delay_ms)
        self.max_delay_ms = float(self.max_delay_ms)
        self.retryable_status_codes = sorted(parse_status_codes(self.retryable_status_codes))


@dataclass
class ObservabilityConfig:
    enable_tracing: bool = False
    enable_metrics: bool = True
    enable_logging: bool = True
    service_name: str = DEFAULT_SERVICE_NAME
    collector_endpoint: str = ""
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: str = ""

    def __post_init__(self):
        self.enable_tracing = _parse_bool(self.enable_tracing)
        self.enable_metrics = _parse_bool(self.enable_metrics)
        self.enable_logging = _parse_bool(self.enable_logging)
        self.json_logs = _parse_bool(self.json_logs)
        self.log_level = str(self.log_level).upper()


@dataclass
class MidazConfig:
    """Resilience configuration for the Midaz client.

    Built once at startup by load_config() and handed to
    midaz_config.assembly, which turns it into core objects. Core modules
    never read the environment themselves.
    """

    retry: RetryPolicyConfig = field(default_factory=RetryPolicyConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    source: str = "defaults"

    def validate(self) -> None:
        """Validate numeric ranges and enum values.

        Raises:
            ValueError: On the first invalid setting found
        """
        self._validate_retry(self.retry)
        self._validate_observability(self.observability)

    @staticmethod
    def _validate_retry(retry: RetryPolicyConfig) -> None:
        if retry.max_retries < 0:
            raise ValueError(f"retry: max_retries must be >= 0, got {retry.max_retries}")
        if retry.initial_delay_ms <= 0:
            raise ValueError(
                f"retry: initial_delay_ms must be > 0, got {retry.initial_delay_ms}"
            )
        if retry.max_delay_ms < retry.initial_delay_ms:
            raise ValueError(
                f"retry: max_delay_ms ({retry.max_delay_ms}) must be >= "
                f"initial_delay_ms ({retry.initial_delay_ms})"
            )
        for code in retry.retryable_status_codes:
            if not (100 <= code <= 599):
                raise ValueError(
                    f"retry: retryable_status_codes must be HTTP status codes, got {code}"
                )

    @staticmethod
    def _validate_observability(observability: ObservabilityConfig) -> None:
        if observability.log_level not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"observability: log_level must be one of {_VALID_LOG_LEVELS}, "
                f"got '{observability.log_level}'"
            )
        if not observability.service_name:
            raise ValueError("observability: service_name must not be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retry": asdict(self.retry),
            "observability": asdict(self.observability),
        }


# =============================================================================
# ENVIRONMENT OVERRIDES
# =============================================================================

# env var -> (section, key)
ENV_OVERRIDES: Dict[str, tuple] = {
    "MIDAZ_RETRY_MAX_RETRIES": ("retry", "max_retries"),
    "MIDAZ_RETRY_INITIAL_DELAY": ("retry", "initial_delay_ms"),
    "MIDAZ_RETRY_MAX_DELAY": ("retry", "max_delay_ms"),
    "MIDAZ_RETRY_STATUS_CODES": ("retry", "retryable_status_codes"),
    "MIDAZ_ENABLE_TRACING": ("observability", "enable_tracing"),
    "MIDAZ_ENABLE_METRICS": ("observability", "enable_metrics"),
    "MIDAZ_ENABLE_LOGGING": ("observability", "enable_logging"),
    "MIDAZ_SERVICE_NAME": ("observability", "service_name"),
    "MIDAZ_COLLECTOR_ENDPOINT": ("observability", "collector_endpoint"),
    "MIDAZ_LOG_LEVEL": ("observability", "log_level"),
    "MIDAZ_JSON_LOGS": ("observability", "json_logs"),
}


def _env_overrides() -> Dict[str, Any]:
    """Collect MIDAZ_* environment variables into a nested config dict."""
    result: Dict[str, Any] = {}
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is None or value == "":
            continue
        result.setdefault(section, {})[key] = value
    return result


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    dotenv_path: Optional[Path] = None,
) -> MidazConfig:
    """Load Midaz configuration.

    Priority (highest to lowest):
    1. overrides argument
    2. MIDAZ_* environment variables (a .env file is loaded first, without
       replacing variables already set)
    3. YAML file (config_path, $MIDAZ_CONFIG_FILE, or ./midaz.yaml)
    4. Dataclass defaults

    An explicitly given config file must exist; the default file is optional.
    """
    load_dotenv(dotenv_path=dotenv_path or find_dotenv(usecwd=True), override=False)

    explicit = config_path is not None or bool(os.getenv(CONFIG_PATH_ENV))
    if config_path is None:
        config_path = Path(os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_FILE)
    config_path = Path(config_path)

    data: Dict[str, Any] = {}
    source = "defaults"
    if config_path.exists():
        logger.info(
            f"Loading configuration from file: {config_path}",
            extra={"config_source": str(config_path)},
        )
        yaml_data = _expand_env_vars(load_yaml(config_path))
        if "midaz" not in yaml_data:
            raise ValueError(
                f"Invalid config file {config_path}: missing 'midaz:' section"
            )
        data = yaml_data["midaz"] or {}
        source = str(config_path)
    elif explicit:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    env_data = _env_overrides()
    if env_data:
        logger.debug(f"Applying environment overrides: {sorted(env_data)}")
        data = _deep_merge(data, env_data)

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        data = _deep_merge(data, overrides)

    config = MidazConfig(
        retry=RetryPolicyConfig(**data.get("retry", {})),
        observability=ObservabilityConfig(**data.get("observability", {})),
        source=source,
    )

    logger.debug("Validating configuration...")
    config.validate()
    logger.debug(
        "Configuration validation passed",
        extra={
            "config_source": source,
            "max_retries": config.retry.max_retries,
            "service_name": config.observability.service_name,
        },
    )
    return config


_midaz_config: Optional[MidazConfig] = None


def get_config() -> MidazConfig:
    """Get or load the singleton Midaz config instance."""
    global _midaz_config
    if _midaz_config is None:
        _midaz_config = load_config()
    return _midaz_config


def set_config(config: MidazConfig) -> None:
    """Set the singleton Midaz config instance (useful for testing)."""
    global _midaz_config
    _midaz_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _midaz_config
    _midaz_config = None


def _cli_main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Midaz resilience configuration tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate and show effective configuration
  python -m midaz_config.config

  # Use a custom config file
  python -m midaz_config.config --config /path/to/midaz.yaml

  # JSON output for automation
  python -m midaz_config.config --json
        """,
    )
    parser.add_argument("--config", type=Path, help="Path to midaz.yaml")
    parser.add_argument(
        "--json", action="store_true", help="Output in JSON format instead of YAML"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        config = load_config(config_path=args.config)
    except (ValueError, FileNotFoundError) as e:
        if args.json:
            print(json.dumps({"validation": {"passed": False, "error": str(e)}}, indent=2))
        else:
            print(f"Configuration invalid: {e}", file=sys.stderr)
        return 1

    output = {"source": config.source, **config.to_dict()}
    if args.json:
        print(json.dumps({"validation": {"passed": True}, "config": output}, indent=2))
    else:
        print(yaml.safe_dump(output, sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
