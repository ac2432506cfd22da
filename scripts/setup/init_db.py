"""
Initialize database — creates all tables, optionally grants admin to a user.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py
       python scripts/setup/init_db.py --admin <user-id> --name "Coach"
"""

import sys
import os
import argparse
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from datetime import datetime
from rowverify.database import create_tables, engine, SessionLocal
from rowverify.config import settings
from sqlalchemy import inspect, text


def grant_admin(user_id: str, name: str = None):
    from rowverify.models.user import User
    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        if user is None:
            user = User(id=user_id, name=name, total_meters=0, upload_count=0,
                        created_at=datetime.utcnow())
            db.add(user)
        user.is_admin = 1
        if name:
            user.name = name
        db.commit()
    finally:
        db.close()
    print(f"✅ {user_id} is now an admin")


def main():
    parser = argparse.ArgumentParser(description="Create tables and seed admins")
    parser.add_argument("--admin", help="User id to grant admin capability")
    parser.add_argument("--name", help="Display name for --admin")
    args = parser.parse_args()

    print("🗄️  Rowverify DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  docker-compose up -d db")
        print("  # or: sudo systemctl start postgresql")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"✅ Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if args.admin:
        grant_admin(args.admin, args.name)

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn rowverify.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
