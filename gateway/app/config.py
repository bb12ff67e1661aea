#!/usr/bin/env python3
"""
Configuration management for the chat gateway.
"""

import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Configuration class for the application."""

    # Server
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", 3001))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # All "today" calculations happen in this zone, never host time
    TIMEZONE = os.getenv("TIMEZONE", "America/Los_Angeles")

    # Display
    DISPLAY_MAX_ROWS = int(os.getenv("DISPLAY_MAX_ROWS", 1000))
    DISPLAY_MAX_CHARS = int(os.getenv("DISPLAY_MAX_CHARS", 500))
    DISPLAY_MAX_COLS = int(os.getenv("DISPLAY_MAX_COLS", 999))
    DISPLAY_CARD_THRESHOLD = int(os.getenv("DISPLAY_CARD_THRESHOLD", 5))

    # TXQL (natural language -> SQL)
    TXQL_API_URL = os.getenv("TXQL_API_URL", "http://localhost:8100/api/sql/query")
    TXQL_MAX_RETRIES = int(os.getenv("TXQL_MAX_RETRIES", 3))
    TXQL_TIMEOUT_SECONDS = float(os.getenv("TXQL_TIMEOUT_SECONDS", 60))
    TXQL_BACKOFF_BASE_SECONDS = float(os.getenv("TXQL_BACKOFF_BASE_SECONDS", 1))
    TXQL_BACKOFF_CAP_SECONDS = float(os.getenv("TXQL_BACKOFF_CAP_SECONDS", 5))

    # Query executor
    QUERY_EXEC_URL = os.getenv("QUERY_EXEC_URL", "http://localhost:8200/api/run/query")
    QUERY_EXEC_KEY = os.getenv("QUERY_EXEC_KEY", "")
    QUERY_EXEC_AUTH = os.getenv("QUERY_EXEC_AUTH", "")
    QUERY_EXEC_TIMEOUT_SECONDS = float(os.getenv("QUERY_EXEC_TIMEOUT_SECONDS", 30))

    # AI Voice call analytics
    AIVOICE_BASE_URL = os.getenv("AIVOICE_BASE_URL", "http://localhost:8300")
    AIVOICE_LICENSE_KEY = os.getenv("AIVOICE_LICENSE_KEY", "")
    AIVOICE_BEARER = os.getenv("AIVOICE_BEARER", "")
    AIVOICE_PAGE_SIZE = int(os.getenv("AIVOICE_PAGE_SIZE", 1000))
    AIVOICE_MAX_PAGES = int(os.getenv("AIVOICE_MAX_PAGES", 50))
    AIVOICE_TIMEOUT_SECONDS = float(os.getenv("AIVOICE_TIMEOUT_SECONDS", 30))

    # LLM (OpenAI-compatible chat completions)
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_API_URL = os.getenv("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
    OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", 60))

    # SQL limits
    SQL_DEFAULT_LIMIT = int(os.getenv("SQL_DEFAULT_LIMIT", 100))
    SQL_SAFETY_LIMIT = int(os.getenv("SQL_SAFETY_LIMIT", 1000))

    # Sessions
    SESSION_BACKEND = os.getenv("SESSION_BACKEND", "memory").lower()
    SESSION_MAX_AGE_MINUTES = float(os.getenv("SESSION_MAX_AGE_MINUTES", 30))
    SESSION_SWEEP_INTERVAL_MINUTES = float(os.getenv("SESSION_SWEEP_INTERVAL_MINUTES", 10))

    # Redis Configuration (SESSION_BACKEND=redis)
    REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB = int(os.getenv("REDIS_DB", 0))

    @classmethod
    def debug_print(cls):
        print(f"[CONFIG] TIMEZONE={cls.TIMEZONE} PORT={cls.PORT}")
        print(f"[CONFIG] TXQL_API_URL={cls.TXQL_API_URL} retries={cls.TXQL_MAX_RETRIES} timeout={cls.TXQL_TIMEOUT_SECONDS}s")
        print(f"[CONFIG] QUERY_EXEC_URL={cls.QUERY_EXEC_URL} key_set={bool(cls.QUERY_EXEC_KEY)}")
        print(f"[CONFIG] AIVOICE_BASE_URL={cls.AIVOICE_BASE_URL} key_set={bool(cls.AIVOICE_LICENSE_KEY)}")
        print(f"[CONFIG] OPENAI_MODEL={cls.OPENAI_MODEL} set={bool(cls.OPENAI_API_KEY)}")
        print(f"[CONFIG] SESSION_BACKEND={cls.SESSION_BACKEND} max_age={cls.SESSION_MAX_AGE_MINUTES}m")

    @classmethod
    def validate(cls):
        """Validate that all required configuration is present and sane."""
        invalid = []

        try:
            ZoneInfo(cls.TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError):
            invalid.append("TIMEZONE")

        for name in ("DISPLAY_MAX_ROWS", "DISPLAY_CARD_THRESHOLD", "TXQL_MAX_RETRIES",
                     "AIVOICE_PAGE_SIZE", "AIVOICE_MAX_PAGES", "SQL_DEFAULT_LIMIT", "SQL_SAFETY_LIMIT"):
            if getattr(cls, name) <= 0:
                invalid.append(name)

        if cls.DISPLAY_MAX_CHARS < 0:
            invalid.append("DISPLAY_MAX_CHARS")

        if cls.SESSION_BACKEND not in ("memory", "redis"):
            invalid.append("SESSION_BACKEND")

        if cls.SESSION_MAX_AGE_MINUTES <= 0 or cls.SESSION_SWEEP_INTERVAL_MINUTES <= 0:
            invalid.append("SESSION_MAX_AGE_MINUTES/SESSION_SWEEP_INTERVAL_MINUTES")

        if invalid:
            raise ValueError(f"Invalid configuration: {', '.join(invalid)}")

        return True


# Validate configuration on import
Config.validate()
