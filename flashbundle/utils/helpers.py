"""
Helper utilities for flashbundle

Common utility functions used throughout the bundle submission client.
"""

import logging
import os
import time
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from hexbytes import HexBytes


def setup_logging(level: str = "INFO",
                  log_file: Optional[str] = None,
                  structured: bool = False) -> None:
    """
    Setup logging configuration for flashbundle

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        structured: Whether to use structured logging
    """
    log_level = getattr(logging, level.upper())

    # Configure basic logging
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Setup file logging if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logging.getLogger().addHandler(file_handler)

    quiet_third_party_loggers()

    # Setup structured logging if enabled
    if structured:
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )


def quiet_third_party_loggers() -> None:
    """Set noisy third-party loggers to WARNING"""
    for name in ('web3', 'urllib3', 'aiohttp', 'eth_account'):
        logging.getLogger(name).setLevel(logging.WARNING)


def to_quantity(value: int) -> str:
    """Encode a non-negative integer as a JSON-RPC hex quantity"""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Quantity must be a non-negative integer, got {value!r}")
    return hex(value)


def parse_quantity(value: Any) -> Optional[int]:
    """
    Decode a numeric field the way relays actually send them

    Relays disagree on number encoding: JSON integers, decimal strings and
    0x-prefixed hex strings all occur, and a bare "0x" means zero.

    Args:
        value: Raw JSON value

    Returns:
        Decoded integer, or None when the field is absent

    Raises:
        ValueError: If the value is present but not a number
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Expected a quantity, got boolean {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in ("0x", ""):
            return 0 if text else None
        if text[:2].lower() == "0x":
            return int(text, 16)
        return int(text, 10)
    raise ValueError(f"Expected a quantity, got {type(value).__name__}")


def to_hex_data(data: Union[bytes, str]) -> str:
    """Render bytes (or a hex string) as 0x-prefixed lowercase hex"""
    return "0x" + bytes(HexBytes(data)).hex()


def format_currency(amount: float,
                    currency: str = "ETH",
                    decimals: int = 6) -> str:
    """
    Format currency amounts with appropriate precision

    Args:
        amount: Amount to format
        currency: Currency symbol
        decimals: Number of decimal places

    Returns:
        Formatted currency string
    """
    if abs(amount) < 0.000001:
        return f"0.000000 {currency}"

    # Use scientific notation for very small amounts
    if abs(amount) < 0.001:
        return f"{amount:.2e} {currency}"

    return f"{amount:.{decimals}f} {currency}"


def wei_to_eth(wei_amount: int) -> float:
    """Convert Wei to ETH"""
    return wei_amount / 1e18


def get_env_var(name: str,
                default: Optional[str] = None,
                required: bool = False) -> Optional[str]:
    """
    Get environment variable with optional default and validation

    Args:
        name: Environment variable name
        default: Default value if not set
        required: Whether the variable is required

    Returns:
        Environment variable value or default

    Raises:
        ValueError: If required variable is not set
    """
    value = os.getenv(name, default)

    if required and value is None:
        raise ValueError(f"Required environment variable {name} is not set")

    return value


def setup_environment(env_file: str = ".env") -> bool:
    """
    Load environment variables from file

    Args:
        env_file: Path to environment file

    Returns:
        True if the file existed and was loaded
    """
    env_path = Path(env_file)

    if env_path.exists():
        from dotenv import load_dotenv
        load_dotenv(env_path)
        logging.info(f"Loaded environment from {env_file}")
        return True

    logging.warning(f"Environment file {env_file} not found")
    return False


class Timer:
    """Context manager for timing code execution"""

    def __init__(self, name: str = "Operation", logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(__name__)
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, *args):
        self.end_time = time.time()
        self.logger.debug(f"{self.name} completed in {self.duration:.3f} seconds")

    @property
    def duration(self) -> float:
        """Get duration in seconds"""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time
