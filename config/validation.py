# config/validation.py

"""
Environment variable validation for the vault import application.
Validates required environment variables at startup.
"""

import os
import sys
from pathlib import Path
from typing import List, Tuple

_ALLOWED_TIE_BREAKS = ("contract", "department")
_ALLOWED_MANAGER_RULES = ("contract", "department", "json")


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # Only validate in production
    if flask_env != "production":
        return True, []

    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key == "your-secret-key" or secret_key == "your_secret_key":
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        errors.append(
            "DATABASE_URL is required in production. "
            "Set it to your PostgreSQL connection string or a SQLite file URI."
        )

    tie_break = os.environ.get("IMPORTER_MANAGER_TIE_BREAK")
    if tie_break and tie_break.strip().lower() not in _ALLOWED_TIE_BREAKS:
        errors.append(
            f"IMPORTER_MANAGER_TIE_BREAK must be one of {', '.join(_ALLOWED_TIE_BREAKS)} (got {tie_break!r})."
        )

    default_rule = os.environ.get("IMPORTER_DEFAULT_MANAGER_RULE")
    if default_rule and default_rule.strip().lower() not in _ALLOWED_MANAGER_RULES:
        errors.append(
            f"IMPORTER_DEFAULT_MANAGER_RULE must be one of {', '.join(_ALLOWED_MANAGER_RULES)} "
            f"(got {default_rule!r})."
        )

    profile_path = os.environ.get("IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH")
    if profile_path and not Path(profile_path).exists():
        errors.append(f"IMPORTER_PRIMARY_CONTRACT_PROFILE_PATH points to a missing file: {profile_path}")

    if os.environ.get("IMPORTER_WORKER_ENABLED", "false").lower() == "true":
        if not os.environ.get("CELERY_BROKER_URL"):
            errors.append("CELERY_BROKER_URL is required when IMPORTER_WORKER_ENABLED=true in production")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
