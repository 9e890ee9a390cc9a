#!/usr/bin/env python3
"""
Quick checks so the notification backend can start. Run from backend/:
  python scripts/check_backend.py
"""
import os
import sys
from pathlib import Path

# Run from backend/
backend_dir = Path(__file__).resolve().parent.parent
os.chdir(backend_dir)
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

def main():
    errors = []
    warnings = []

    # 1) .env
    env_file = backend_dir / ".env"
    if not env_file.exists():
        errors.append("backend/.env missing. Copy from backend/.env.example and set DATABASE_URL, etc.")
    else:
        print("OK  .env exists")

    # 2) DB connection and tables
    try:
        from sqlalchemy import inspect, text
        from blognotify.db.session import engine
        from blognotify.db.tables import ALL_TABLE_NAMES
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("OK  Database connection (DATABASE_URL)")
        missing = set(ALL_TABLE_NAMES) - set(inspect(engine).get_table_names())
        if missing:
            errors.append(f"Missing tables {sorted(missing)}. Run: alembic upgrade head")
        else:
            print("OK  Tables present")
    except Exception as e:
        errors.append(f"Database: {e}")
        print("FAIL Database:", e)

    # 3) Delivery channels (optional: without them only in-app notifications are written)
    from blognotify.services.email_notify import smtp_configured
    from blognotify.services.push import vapid_configured
    if smtp_configured():
        print("OK  SMTP configured")
    else:
        warnings.append("SMTP_USER / SMTP_PASSWORD not set: email channel disabled")
    if vapid_configured():
        print("OK  VAPID keys configured")
    else:
        warnings.append("VAPID keys not set: push channel disabled (scripts/generate_vapid_keys.py)")

    # 4) App import (catches missing deps, bad imports)
    try:
        from blognotify.main import app  # noqa: F401
        print("OK  App import (blognotify.main)")
    except Exception as e:
        errors.append(f"App import: {e}")
        print("FAIL App import:", e)

    for w in warnings:
        print("WARN", w)
    if errors:
        print("\n---")
        for e in errors:
            print("•", e)
        return 1

    print("\nAll checks passed. Start with: uvicorn blognotify.main:app --reload --port 8000")
    return 0

if __name__ == "__main__":
    sys.exit(main())
