"""
Supabase client factory and .env loading.

The .env file at the repository root is loaded on import so every
os.getenv-based factory sees the same configuration.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

from app.core.logging import get_logger

logger = get_logger(__name__)

env_path = Path(__file__).parent.parent.parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)
    logger.info("env_loaded", env_path=str(env_path))
else:
    logger.debug("env_file_not_found", expected_path=str(env_path))


def get_supabase_client() -> Optional[Client]:
    """
    Create a Supabase client from SUPABASE_URL and SUPABASE_SERVICE_KEY.

    Returns:
        Client instance, or None when credentials are missing or invalid
    """
    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")

    if not supabase_url or not supabase_key:
        logger.info(
            "supabase_credentials_missing",
            message="SUPABASE_URL / SUPABASE_SERVICE_KEY not set",
        )
        return None

    if not supabase_url.startswith("http"):
        logger.error(
            "supabase_url_invalid",
            url=supabase_url,
            message="Should start with http:// or https://",
        )
        return None

    try:
        client = create_client(supabase_url, supabase_key)
        logger.info("supabase_client_created", url_prefix=supabase_url[:30])
        return client
    except Exception as e:
        logger.error(
            "supabase_client_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return None
