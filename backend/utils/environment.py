"""
Environment Configuration Utility

Provides environment detection for the Emoji Generator backend.

ENVIRONMENT values:
- production: Required settings must be present, startup fails fast otherwise
- development: Local defaults allowed (SQLite file database, console email fallback)
- test: Same defaults as development, used by the automated test suite
"""
import os
import logging

# Valid environment values
VALID_ENVIRONMENTS = {"production", "development", "test"}

# Get current environment (default to development for safety)
ENVIRONMENT = os.environ.get("ENVIRONMENT", "development").lower()

# Validate environment value
if ENVIRONMENT not in VALID_ENVIRONMENTS:
    logging.warning(f"Invalid ENVIRONMENT '{ENVIRONMENT}', defaulting to 'development'")
    ENVIRONMENT = "development"


def allow_local_defaults() -> bool:
    """
    Check if local fallbacks (SQLite file, logged verification codes) are allowed.

    Production must be configured explicitly.
    """
    return ENVIRONMENT in {"development", "test"}


def get_cors_origins() -> list:
    """Parse CORS_ORIGINS (comma separated) into a list."""
    raw = os.environ.get("CORS_ORIGINS", "http://localhost:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# Log environment on module load
logging.info(f"Environment: {ENVIRONMENT} | Local defaults allowed: {allow_local_defaults()}")
