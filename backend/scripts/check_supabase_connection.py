"""
Check that the conversation store can reach Supabase.

Run this script to verify credentials and that the `conversations` and
`messages` tables exist before starting the API with a persistent store.
"""
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
    print(f"Loaded environment from {env_path}")
else:
    print(f"Note: .env file not found at {env_path}")
    print("   Environment variables will be read from system environment")

from app.core.database import get_supabase_client
from app.services.conversations.supabase_store import CONVERSATIONS_TABLE, MESSAGES_TABLE


def check_connection() -> bool:
    """Check Supabase credentials, connectivity and the conversation tables."""
    print("=" * 60)
    print("Checking Supabase Connection")
    print("=" * 60)
    print()

    print("Step 1: Checking environment variables...")
    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")

    if not supabase_url:
        print("[X] SUPABASE_URL not found in environment variables")
        print("   Without it the API falls back to the in-memory conversation store")
        return False
    print(f"[OK] SUPABASE_URL found: {supabase_url}")

    if not supabase_key:
        print("[X] SUPABASE_SERVICE_KEY not found in environment variables")
        return False
    key_preview = f"{supabase_key[:8]}...{supabase_key[-8:]}" if len(supabase_key) > 16 else "***"
    print(f"[OK] SUPABASE_SERVICE_KEY found: {key_preview}")
    print()

    print("Step 2: Creating Supabase client...")
    client = get_supabase_client()
    if not client:
        print("[X] Failed to create Supabase client")
        print("   Check your .env file configuration and Supabase instance status")
        return False
    print("[OK] Supabase client created successfully")
    print()

    print("Step 3: Checking conversation tables...")
    tables_missing = []
    for table in (CONVERSATIONS_TABLE, MESSAGES_TABLE):
        try:
            result = client.table(table).select("id").limit(1).execute()
            print(f"[OK] Table '{table}' exists ({len(result.data)} sample row(s))")
        except Exception as e:
            tables_missing.append(table)
            print(f"[X] Table '{table}' not found or not accessible: {e}")
    print()

    print("=" * 60)
    print("Connection Check Summary")
    print("=" * 60)
    if tables_missing:
        print(f"[X] {len(tables_missing)} table(s) missing: {', '.join(tables_missing)}")
        print("   Expected columns:")
        print("   - conversations(id, title, account_id, created_at, updated_at)")
        print("   - messages(id, conversation_id, role, content, provider, post_process_steps,")
        print("     citations, keyword_entries, metadata, created_at)")
        return False

    print("[OK] Supabase connection is working and conversation tables are present.")
    return True


if __name__ == "__main__":
    success = check_connection()
    sys.exit(0 if success else 1)
