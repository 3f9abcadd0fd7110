"""Configuration loading for the Midaz resilience core.

Configuration comes from a single YAML file (``midaz:`` section) with
``${VAR}`` expansion, overridden by MIDAZ_* environment variables.

Main Functions
--------------

    - load_config(): Load MidazConfig from YAML, .env and environment
    - get_config(): Get or load the singleton config instance
    - set_config() / reset_config(): Replace or clear the singleton

Startup wiring (midaz_config.assembly):
    - create_retry_policy(), create_transaction_executor(),
      create_observability_sink(), create_paginator(), configure_logging()

Usage Examples
--------------

    from midaz_config import load_config
    from midaz_config.assembly import create_transaction_executor

    config = load_config()
    executor = create_transaction_executor(config)
"""

from midaz_config.config import (
    MidazConfig,
    ObservabilityConfig,
    RetryPolicyConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "MidazConfig",
    "RetryPolicyConfig",
    "ObservabilityConfig",
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
]
