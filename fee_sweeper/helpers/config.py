"""Configuration management and environment variable utilities."""

import importlib
import os

from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from fee_sweeper.helpers.constants import (
    DEFAULT_BLOCK_RANGE_SIZE,
    DEFAULT_MAX_CONCURRENT_WALLETS,
    DEFAULT_START_BLOCK,
    MAX_POLL_SECONDS,
    POLL_INTERVAL_MS,
    REDEMPTION_MAX_ATTEMPTS,
)
from fee_sweeper.relayer.tasks import CompletionCheck


# Load environment variables from .env file
load_dotenv()


def get_required_env(key: str) -> str:
    """Get a required environment variable.

    Args:
        key: Environment variable name

    Returns:
        Environment variable value

    Raises:
        ValueError: If the environment variable is not set

    Example:
        ```python
        from fee_sweeper.helpers.config import get_required_env

        relayer_url = get_required_env("RELAYER_URL")
        ```
    """
    value = os.getenv(key)
    if not value:
        msg = f"{key} environment variable is not set"
        raise ValueError(msg)
    return value


def get_optional_env(key: str, default: str | None = None) -> str | None:
    """Get an optional environment variable with a default value.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    return os.getenv(key, default)


def get_int_env(key: str, default: int) -> int:
    """Get an integer environment variable.

    Args:
        key: Environment variable name
        default: Value used when the variable is unset or empty

    Returns:
        Parsed integer

    Raises:
        ValueError: If the variable is set but is not an integer
    """
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        return int(raw, 0)
    except ValueError:
        msg = f"{key} must be an integer, got {raw!r}"
        raise ValueError(msg) from None


def get_rpc_url(rpc_url: str | None = None) -> str:
    """Get the chain RPC URL from parameter or environment.

    Args:
        rpc_url: Optional RPC URL to use directly

    Returns:
        Chain JSON-RPC URL

    Raises:
        ValueError: If RPC URL is not provided and ETH_RPC_URL env var is not set
    """
    if rpc_url:
        return rpc_url

    env_rpc_url = os.getenv("ETH_RPC_URL")
    if not env_rpc_url:
        msg = "ETH_RPC_URL must be provided or set in environment variables"
        raise ValueError(msg)

    return env_rpc_url


def get_database_url() -> str:
    """Get the database URL from environment variables.

    ``DATABASE_URL`` wins when set; otherwise the URL is assembled from the
    ``POSTGRE_*`` variables.

    Returns:
        str: SQLAlchemy async database URL

    Raises:
        ValueError: If required environment variables are not set
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    postgre_host = get_required_env("POSTGRE_HOST")
    postgre_port = os.getenv("POSTGRE_PORT", "5432")
    postgre_user = get_required_env("POSTGRE_USER")
    postgre_password = get_required_env("POSTGRE_PASSWORD")
    postgre_db = get_required_env("POSTGRE_DB")

    # Use psycopg (version 3) as the async PostgreSQL driver
    return (
        "postgresql+psycopg://"
        f"{postgre_user}:{postgre_password}"
        f"@{postgre_host}:{postgre_port}"
        f"/{postgre_db}"
    )


def load_object(path: str) -> Any:
    """Resolve a ``module:attribute`` import path.

    Used to plug in the external decryption and key-derivation primitives.

    Raises:
        ValueError: If the path is malformed or the attribute does not exist
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        msg = f"Expected 'module:attribute', got {path!r}"
        raise ValueError(msg)

    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        msg = f"{module_name} has no attribute {attr!r}"
        raise ValueError(msg) from None


class SweeperConfig(BaseModel):
    """Runtime configuration for one sweeper invocation."""

    rpc_url: str
    darkpool_address: str
    chain_id: int
    decryption_key: str = Field(repr=False)
    relayer_url: str
    database_url: str = Field(repr=False)
    wallet_eth_keys: list[str] = Field(default_factory=list, repr=False)
    fee_note_event_topic: str
    start_block: int = DEFAULT_START_BLOCK
    block_range_size: int = Field(default=DEFAULT_BLOCK_RANGE_SIZE, gt=0)
    task_poll_interval_ms: int = Field(default=POLL_INTERVAL_MS, gt=0)
    task_max_poll_seconds: float = Field(default=MAX_POLL_SECONDS, gt=0)
    task_completion_check: CompletionCheck = CompletionCheck.ANY_ERROR
    redemption_max_attempts: int = Field(default=REDEMPTION_MAX_ATTEMPTS, ge=1)
    max_concurrent_wallets: int = Field(default=DEFAULT_MAX_CONCURRENT_WALLETS, ge=1)
    decrypt_fn: str | None = None
    key_derivation: str | None = None

    @classmethod
    def from_env(cls) -> "SweeperConfig":
        """Build the configuration from environment variables.

        Raises:
            ValueError: If a required variable is missing or a value is invalid
        """
        raw_keys = get_optional_env("WALLET_ETH_KEYS", "") or ""
        completion_check = get_optional_env("TASK_COMPLETION_CHECK", "any_error")
        try:
            check = CompletionCheck(completion_check)
        except ValueError:
            msg = f"Unknown TASK_COMPLETION_CHECK: {completion_check!r}"
            raise ValueError(msg) from None

        return cls(
            rpc_url=get_rpc_url(),
            darkpool_address=get_required_env("DARKPOOL_ADDRESS"),
            chain_id=int(get_required_env("CHAIN_ID"), 0),
            decryption_key=get_required_env("FEE_DECRYPTION_KEY"),
            relayer_url=get_required_env("RELAYER_URL").rstrip("/"),
            database_url=get_database_url(),
            wallet_eth_keys=[k.strip() for k in raw_keys.split(",") if k.strip()],
            fee_note_event_topic=get_required_env("FEE_NOTE_EVENT_TOPIC"),
            start_block=get_int_env("START_BLOCK", DEFAULT_START_BLOCK),
            block_range_size=get_int_env("BLOCK_RANGE_SIZE", DEFAULT_BLOCK_RANGE_SIZE),
            task_poll_interval_ms=get_int_env("TASK_POLL_INTERVAL_MS", POLL_INTERVAL_MS),
            task_max_poll_seconds=float(
                get_optional_env("TASK_MAX_POLL_SECONDS", str(MAX_POLL_SECONDS))
                or MAX_POLL_SECONDS
            ),
            task_completion_check=check,
            redemption_max_attempts=get_int_env(
                "REDEMPTION_MAX_ATTEMPTS", REDEMPTION_MAX_ATTEMPTS
            ),
            max_concurrent_wallets=get_int_env(
                "MAX_CONCURRENT_WALLETS", DEFAULT_MAX_CONCURRENT_WALLETS
            ),
            decrypt_fn=get_optional_env("DECRYPT_FN"),
            key_derivation=get_optional_env("KEY_DERIVATION"),
        )


__all__ = [
    "SweeperConfig",
    "get_database_url",
    "get_int_env",
    "get_optional_env",
    "get_required_env",
    "get_rpc_url",
    "load_object",
]
