from typing import Any, Callable

from supabase import create_client, Client
from dotenv import load_dotenv
import os

load_dotenv()

# PostgREST's default max-rows; a full read must page past it
PAGE_SIZE = 1000
UNIQUE_VIOLATION = "23505"


def get_supabase_client(url: str | None = None, key: str | None = None) -> Client:
    """Get initialized Supabase client (explicit credentials win over the environment)."""
    url = url or os.getenv("SUPABASE_URL")
    key = key or os.getenv("SUPABASE_SERVICE_KEY")

    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

    return create_client(url, key)


def fetch_all_rows(build_query: Callable[[], Any], page_size: int | None = None) -> list[dict]:
    """
    Read every row of a query, one range() page at a time.

    Args:
        build_query: Returns a fresh, ordered query builder for each page
        page_size: Rows per request (defaults to PAGE_SIZE)

    Returns:
        All rows, in query order
    """
    page_size = page_size or PAGE_SIZE
    rows: list[dict] = []
    start = 0
    while True:
        response = build_query().range(start, start + page_size - 1).execute()
        page = response.data or []
        rows.extend(page)
        if len(page) < page_size:
            return rows
        start += page_size


def is_unique_violation(error: Exception) -> bool:
    """True if a PostgREST error is a duplicate key on a unique index."""
    code = getattr(error, "code", None)
    return code == UNIQUE_VIOLATION or "duplicate key" in str(error)
