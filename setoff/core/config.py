"""
Configuration management for the set-off allocation engine.

This module handles loading and validating environment variables.
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

VALID_ALLOCATION_MODES = ("NETTING", "AMOUNT")


def _int_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    """Configuration class with environment variables."""

    # Rounding precision (per allocation session)
    AMOUNT_DECIMALS: int = _int_env("AMOUNT_DECIMALS", 2)
    LOCAL_AMOUNT_DECIMALS: int = _int_env("LOCAL_AMOUNT_DECIMALS", 2)
    CITY_AMOUNT_DECIMALS: int = _int_env("CITY_AMOUNT_DECIMALS", 2)
    EXCHANGE_RATE_DECIMALS: int = _int_env("EXCHANGE_RATE_DECIMALS", 6)

    # NETTING for set-off/contra, AMOUNT for receipt/payment
    ALLOCATION_MODE: str = os.getenv("ALLOCATION_MODE", "NETTING").strip().upper()

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """
        Validate that configuration values are usable.

        Raises:
            ValueError: If a decimal count is negative or the mode is unknown.
        """
        for key in (
            "AMOUNT_DECIMALS",
            "LOCAL_AMOUNT_DECIMALS",
            "CITY_AMOUNT_DECIMALS",
            "EXCHANGE_RATE_DECIMALS",
        ):
            if getattr(cls, key) < 0:
                raise ValueError(f"{key} must not be negative")

        if cls.ALLOCATION_MODE not in VALID_ALLOCATION_MODES:
            raise ValueError(
                f"ALLOCATION_MODE must be one of {', '.join(VALID_ALLOCATION_MODES)}"
            )
