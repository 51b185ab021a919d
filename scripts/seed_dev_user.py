"""
Dev-only seed script for the Wine Reviewer API.

What it does:
- Optionally creates the database tables (``--create-tables``).
- Inserts a legacy user with no google_id so ``POST /auth/login`` works
  locally when ENABLE_DEV_LOGIN=true. Re-running with an existing email is
  a no-op.

Guardrails:
- Refuses to run when ENV=prod
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys


# Allow `import wine_api.*` from backend/
REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))


from wine_api.core.base import Base  # noqa: E402
from wine_api.core.config import settings  # noqa: E402
from wine_api.core.database import SessionLocal, engine  # noqa: E402
from wine_api.models.user import User  # noqa: E402,F401
from wine_api.services.users import create_legacy_user, get_user_by_email  # noqa: E402


DEFAULT_EMAIL = "lucasxferreira@gmail.com"
DEFAULT_NAME = "Lucas"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Dev seed: create a legacy user for the email login.")
    parser.add_argument("--email", default=DEFAULT_EMAIL, help="Email of the seeded user.")
    parser.add_argument("--name", default=DEFAULT_NAME, help="Display name of the seeded user.")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first.")
    args = parser.parse_args(argv)

    if settings.is_prod:
        print("Refusing to run: ENV is 'prod'")
        return 2

    if args.create_tables:
        Base.metadata.create_all(bind=engine)
        print("Tables created (if missing).")

    with SessionLocal() as db:
        existing = get_user_by_email(db, args.email)
        if existing is not None:
            print(f"User already exists: id={existing.id} email={existing.email}")
            return 0

        user = create_legacy_user(db, email=args.email, display_name=args.name)
        print(f"Created user: id={user.id} email={user.email}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
