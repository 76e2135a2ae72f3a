import logging
from functools import lru_cache

from supabase import create_client, Client

from kyc_workflow.core.config import settings
from kyc_workflow.core.errors import DependencyError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Shared Supabase client for the document storage bucket.

    KYC files are private, so only the service role key is accepted.
    """
    missing = [
        name for name, value in (
            ("SUPABASE_URL", settings.SUPABASE_URL),
            ("SUPABASE_SERVICE_ROLE", settings.SUPABASE_SERVICE_ROLE),
        ) if not value
    ]
    if missing:
        logger.error("Supabase storage is not configured: missing %s", ", ".join(missing))
        raise DependencyError("Document storage is not configured", details={"missing": missing})

    key = settings.SUPABASE_SERVICE_ROLE
    masked_key = f"{key[:4]}...{key[-4:]}" if len(key) > 8 else "<hidden>"
    logger.debug("Using Supabase host %s with key %s", settings.SUPABASE_URL.split("://")[-1], masked_key)
    return create_client(settings.SUPABASE_URL, key)
