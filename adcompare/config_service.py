"""
Configuration Service
Centralized configuration management for the comparison core.
"""

import os
import streamlit as st
from typing import Optional


class ConfigService:
    """Service for managing application configuration."""

    # AI/API Configuration
    GEMINI_TIMEOUT: int = 30
    GEMINI_RETRY_ATTEMPTS: int = 2
    GEMINI_RETRY_DELAY_BASE: float = 0.8
    GEMINI_MODELS: list[str] = ['gemini-2.0-flash-exp', 'gemini-1.5-flash']
    GEMINI_EXTRACTION_TEMPERATURE: float = 0.1

    # Date/Time Configuration
    DATA_LAG_DAYS: int = 1  # Ad platform data is one day behind
    MIN_YEAR: int = 1900
    MAX_YEAR: int = 3000
    MAX_LAST_N_DAYS: int = 365
    MAX_LAST_N_MONTHS: int = 24
    MAX_RESOLVED_RANGES: int = 2
    DEFAULT_DATE_RANGE_DAYS: int = 30
    DEFAULT_TO_RECENT_WINDOW: bool = False  # Single-period queries with no dates

    # Currency/Number Format Configuration
    MICROS_PER_UNIT: int = 1_000_000
    DEFAULT_DECIMAL_PLACES: int = 2
    CURRENCY_ROUNDING: str = "half_up"  # "half_up" or "half_even"

    # Comparison Configuration
    DEFAULT_INTENT_LABEL: str = "period_comparison"
    SINGLE_PERIOD_INTENT_LABEL: str = "period_performance"
    DEFAULT_QUERY_TEMPLATE: str = "show campaign performance for {label}"
    ACCEPTED_DATE_FORMATS: list[str] = [
        "today",
        "last 7 days",
        "January 2025",
        "Q1 2025",
        "2025-01-01 to 2025-01-31",
    ]
    COMPARISON_EXAMPLE: str = "Compare October 2025 vs October 2024"

    @classmethod
    def get_gemini_api_key(cls) -> Optional[str]:
        """Get Gemini API key from Streamlit secrets, then the environment."""
        try:
            key = st.secrets.get("GEMINI_API_KEY", None)
        except Exception:
            key = None
        return key or os.getenv("GEMINI_API_KEY")

    @classmethod
    def use_gemini(cls) -> bool:
        """Check if Gemini is available and should be used."""
        return cls.get_gemini_api_key() is not None

    @classmethod
    def get_rounding_mode(cls) -> str:
        """
        Get the decimal rounding mode for currency and ratio outputs.

        Returns:
            A ``decimal`` module rounding constant name
        """
        modes = {
            "half_up": "ROUND_HALF_UP",
            "half_even": "ROUND_HALF_EVEN",
        }
        return modes.get(cls.CURRENCY_ROUNDING, "ROUND_HALF_UP")


# Singleton instance
_config_service = ConfigService()

def get_config() -> ConfigService:
    """Get the configuration service instance."""
    return _config_service
