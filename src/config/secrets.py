"""
Secret management for planner provider tokens.

Usage:
    from src.config.secrets import get_tasks_api_token

    # Will raise if token is missing
    token = get_tasks_api_token()

CLI check:
    python -m src.config.secrets --check
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Find .env file - walk up from this file to repo root
_current = Path(__file__).resolve()
_repo_root = _current.parent.parent.parent  # src/config/secrets.py -> repo root
_env_path = _repo_root / ".env"

if _env_path.exists():
    load_dotenv(_env_path)
else:
    # Also try current working directory
    load_dotenv()


TASKS_TOKEN_ENV = "HOLDFAST_TASKS_TOKEN"


class MissingAPIKeyError(Exception):
    """Raised when a required API token is not configured."""
    pass


def get_tasks_api_token(env_var: str = TASKS_TOKEN_ENV) -> str:
    """
    Get the bearer token for the task_api planner provider.

    Args:
        env_var: Environment variable holding the token. Contracts may name
            their own variable so several task accounts can coexist.

    Returns:
        str: The token

    Raises:
        MissingAPIKeyError: If the variable is not set
    """
    token = os.environ.get(env_var, "").strip()
    if not token:
        raise MissingAPIKeyError(
            f"{env_var} not found. "
            "Copy .env.example to .env and add your token."
        )
    return token


def check_keys() -> dict:
    """
    Check which tokens are configured.

    Returns:
        dict: Status of each token ("OK" or "MISSING")
    """
    status = {}

    tasks_token = os.environ.get(TASKS_TOKEN_ENV, "").strip()
    status[TASKS_TOKEN_ENV] = "OK" if tasks_token else "MISSING"

    return status


def _cli_check() -> int:
    """CLI entry point for --check flag."""
    status = check_keys()
    all_ok = True

    for key_name, key_status in status.items():
        print(f"{key_name}: {key_status}")
        if key_status == "MISSING":
            all_ok = False

    if not all_ok:
        print("\nTo configure tokens:")
        print("  1. Copy .env.example to .env")
        print("  2. Add your tokens to .env")
        return 1

    print("\nAll tokens configured.")
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Check planner token configuration"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check if tokens are configured"
    )

    args = parser.parse_args()

    if args.check:
        sys.exit(_cli_check())
    else:
        parser.print_help()
