"""
Applies the ledger migrations.

Usage:
    python migrations/apply.py

Requires SUPABASE_URL and SUPABASE_SERVICE_KEY in .env and an `exec_sql`
RPC on the database. Without it, run the files in the Supabase SQL editor.
"""
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from segment_blast.services.supabase import get_supabase_client  # noqa: E402

MIGRATIONS_DIR = Path(__file__).parent

# Applied in order
MIGRATIONS = [
    "001_segment_blast.sql",
]


def apply_migrations() -> int:
    """Applies every migration; returns the number of failures."""
    client = get_supabase_client()
    failures = 0

    for migration_file in MIGRATIONS:
        path = MIGRATIONS_DIR / migration_file
        if not path.exists():
            print(f"[SKIP] {migration_file} not found")
            continue

        print(f"[APPLY] {migration_file}...")
        try:
            client.rpc("exec_sql", {"sql": path.read_text(encoding="utf-8")}).execute()
            print(f"[OK] {migration_file}")
        except Exception as e:
            failures += 1
            print(f"[ERROR] {migration_file}: {e}")

    return failures


if __name__ == "__main__":
    print("=== segment_blast migrations ===")
    failed = apply_migrations()
    if failed:
        print()
        print("Run the failed files manually in the Supabase SQL editor:")
        for name in MIGRATIONS:
            print(f"  - migrations/{name}")
    sys.exit(1 if failed else 0)
