"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    get_supabase_client: Lazily created Supabase client
    reset_connection: Drop the cached client
"""

from config.settings import settings, get_settings, Settings
from config.database import (
    get_supabase_client,
    reset_connection,
    DatabaseError,
    ConnectionError
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "get_supabase_client",
    "reset_connection",
    "DatabaseError",
    "ConnectionError",
]
