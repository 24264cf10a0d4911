#!/usr/bin/env python3
"""Create a user, or reset an existing user's password.

Usage:
    # Using environment variables:
    CHIRPY_EMAIL=walt@example.com CHIRPY_PASSWORD=SecurePassword123! python scripts/create_user.py

    # Or with command line args:
    python scripts/create_user.py --email walt@example.com --password SecurePassword123!

Environment Variables:
    CHIRPY_EMAIL: Email for the user
    CHIRPY_PASSWORD: Password for the user (8-128 characters)
    TOKEN_SECRET: Signing secret; a throwaway one is generated when unset
    DB_URL: PostgreSQL connection string (uses an in-memory store when unset)
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def create_or_update_user(email: str, password: str, dry_run: bool = False) -> dict:
    """Create the user, or replace the password of an existing one.

    Returns:
        dict with user_id, email, and status ('created', 'updated' or 'dry_run')
    """
    # Import here to avoid loading config before env vars are set
    from chirpauth.service.runtime import get_runtime

    runtime = get_runtime()
    existing_user = runtime.store.get_user_by_email(email)

    if dry_run:
        action = "update" if existing_user else "create"
        print(f"[DRY RUN] Would {action} user: {email}")
        return {
            "user_id": str(existing_user.id) if existing_user else None,
            "email": email,
            "status": "dry_run",
        }

    if existing_user:
        hashed = runtime.auth.hasher.hash_password(password)
        # refresh tokens are revoked before the new hash is stored
        revoked = runtime.store.revoke_user_refresh_tokens(existing_user.id)
        runtime.store.update_user_credentials(existing_user.id, email, hashed)
        print(f"Updated password for {email} (id: {existing_user.id}, revoked {revoked} refresh tokens)")
        return {"user_id": str(existing_user.id), "email": email, "status": "updated"}

    user = runtime.auth.create_user(email, password)
    print(f"Created user: {email} (id: {user.id})")
    return {
        "user_id": str(user.id),
        "email": email,
        "status": "created",
        "access_token": runtime.auth.issue_access_token(user.id),
    }


def main():
    parser = argparse.ArgumentParser(
        description="Create a Chirpy user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--email",
        default=os.environ.get("CHIRPY_EMAIL"),
        help="User email (or set CHIRPY_EMAIL env var)",
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("CHIRPY_PASSWORD"),
        help="User password (or set CHIRPY_PASSWORD env var)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )

    args = parser.parse_args()

    if not args.email:
        print("Error: --email or CHIRPY_EMAIL environment variable required")
        sys.exit(1)

    if not args.password:
        print("Error: --password or CHIRPY_PASSWORD environment variable required")
        sys.exit(1)

    from chirpauth.api.schemas import _validate_email, _validate_password_strength

    try:
        email = _validate_email(args.email)
        password = _validate_password_strength(args.password)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if not os.environ.get("TOKEN_SECRET"):
        import secrets
        os.environ["TOKEN_SECRET"] = secrets.token_urlsafe(48)

    if not os.environ.get("DB_URL"):
        os.environ["USE_MEMORY_STORE"] = "true"
        print("Note: Using in-memory store (set DB_URL for persistence)")

    try:
        result = create_or_update_user(email, password, args.dry_run)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result["status"] == "created" and result.get("access_token"):
        print(f"  Access Token: {result['access_token'][:50]}...")


if __name__ == "__main__":
    main()
