#!/usr/bin/env python3
"""
Seed one active user per role for local development.

Safe by default (dry-run). Use --apply to persist changes.
Every seeded account gets the password given with --password.
"""

import argparse


def main() -> int:
    parser = argparse.ArgumentParser(description="Create one demo user per role.")
    parser.add_argument("--apply", action="store_true", help="Persist changes (default: dry-run)")
    parser.add_argument("--password", default="ChangeMe123!", help="Password for every seeded user")
    parser.add_argument("--domain", default="lawbridge.local", help="Email domain for seeded users")
    args = parser.parse_args()

    from lawbridge.auth import get_password_hash
    from lawbridge.db.models import Role, User, UserStatus
    from lawbridge.db.session import get_db_session, init_db

    init_db()

    created = 0
    skipped = 0
    with get_db_session() as db:
        for role in Role:
            email = f"{role.value}@{args.domain}"
            if db.query(User).filter(User.email == email).first():
                skipped += 1
                continue
            db.add(User(
                name=f"Demo {role.value.title()}",
                email=email,
                role=role,
                status=UserStatus.ACTIVE,
                password_hash=get_password_hash(args.password),
            ))
            created += 1
            print(f"  + {email} ({role.value})")

        if not args.apply:
            db.rollback()

    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] users created: {created}, already present: {skipped}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
