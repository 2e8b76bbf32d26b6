#!/usr/bin/env python3
"""
folioauth -- operator commands for the credential store.

Usage:
  python main.py create-admin --email ops@example.com --first-name Ops
  python main.py list-sessions jane@example.com
  python main.py revoke-sessions jane@example.com
  python main.py purge-codes
  python main.py code-stats

Configuration comes from the same environment / .env file as the API
(DATABASE_URL, JWT_ACCESS_SECRET, JWT_REFRESH_SECRET, BCRYPT_ROUNDS, ...).
"""

import argparse
import getpass
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from auth.errors import AuthError
from auth.hashing import CredentialHasher
from auth.models import User, normalize_email
from auth.reset import CredentialResetService
from auth.service import AuthService
from auth.store import AuthStore
from auth.strength import validate_password
from auth.tokens import TokenCodec
from core.config import Settings, get_settings

logger = logging.getLogger("folioauth.cli")


def create_admin(
    store: AuthStore,
    hasher: CredentialHasher,
    email: str,
    first_name: str,
    password: str,
    last_name: Optional[str] = None,
) -> User:
    """Insert an admin account directly. No session is opened; the admin logs in normally.

    Raises ValueError if the password fails the account policy and
    ConflictError if the email is taken.
    """
    errors = validate_password(password)
    if errors:
        raise ValueError("; ".join(errors))
    now = datetime.now(timezone.utc)
    with store.transaction() as uow:
        return uow.users.create(
            User(
                email=normalize_email(email),
                first_name=first_name,
                last_name=last_name,
                password_hash=hasher.hash(password),
                role="admin",
                created_at=now,
                updated_at=now,
            )
        )


def _cmd_create_admin(args, settings: Settings, store: AuthStore) -> int:
    password = args.password or getpass.getpass("Password: ")
    try:
        user = create_admin(
            store,
            CredentialHasher(rounds=settings.bcrypt_rounds),
            email=args.email,
            first_name=args.first_name,
            last_name=args.last_name,
            password=password,
        )
    except ValueError as e:
        print(f"  [!] {e}")
        return 1
    print(f"  Admin created: {user.email} ({user.id})")
    return 0


def _cmd_list_sessions(args, settings: Settings, store: AuthStore) -> int:
    now = datetime.now(timezone.utc)
    with store.transaction() as uow:
        user = uow.users.get_by_email(normalize_email(args.email))
        sessions = uow.sessions.list_for_user(user.id) if user else []
    if user is None:
        print(f"  [!] No account for {args.email}.")
        return 1
    if not sessions:
        print("  No sessions.")
        return 0
    for s in sessions:
        state = "active" if s.is_usable(now) else ("revoked" if s.revoked else "expired")
        print(f"  {s.id}  {state:<8} created {s.created_at.isoformat()}  expires {s.expires_at.isoformat()}")
    return 0


def _cmd_revoke_sessions(args, settings: Settings, store: AuthStore) -> int:
    with store.transaction() as uow:
        user = uow.users.get_by_email(normalize_email(args.email))
    if user is None:
        print(f"  [!] No account for {args.email}.")
        return 1
    hasher = CredentialHasher(rounds=settings.bcrypt_rounds)
    revoked = AuthService(store, hasher, TokenCodec.from_settings(settings)).logout(user.id)
    print(f"  Revoked {revoked} session(s) for {user.email}.")
    return 0


def _cmd_purge_codes(args, settings: Settings, store: AuthStore) -> int:
    service = CredentialResetService.from_settings(store, CredentialHasher(rounds=settings.bcrypt_rounds), settings)
    removed = service.purge_expired_codes()
    print(f"  Removed {removed} expired reset code(s).")
    return 0


def _cmd_code_stats(args, settings: Settings, store: AuthStore) -> int:
    service = CredentialResetService.from_settings(store, CredentialHasher(rounds=settings.bcrypt_rounds), settings)
    stats = service.code_stats()
    for key in ("total", "active", "expired", "consumed"):
        print(f"  {key:<9} {stats[key]}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="folioauth",
        description="Operator commands for the folioauth credential store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-admin", help="Create an admin account")
    p.add_argument("--email", required=True)
    p.add_argument("--first-name", required=True)
    p.add_argument("--last-name", default=None)
    p.add_argument("--password", default=None, help="Prompted for when omitted")
    p.set_defaults(handler=_cmd_create_admin)

    p = sub.add_parser("list-sessions", help="List refresh sessions for an account")
    p.add_argument("email")
    p.set_defaults(handler=_cmd_list_sessions)

    p = sub.add_parser("revoke-sessions", help="Revoke every active session for an account")
    p.add_argument("email")
    p.set_defaults(handler=_cmd_revoke_sessions)

    p = sub.add_parser("purge-codes", help="Delete expired password reset codes")
    p.set_defaults(handler=_cmd_purge_codes)

    p = sub.add_parser("code-stats", help="Show password reset code counts")
    p.set_defaults(handler=_cmd_code_stats)

    return parser


def main(argv: Optional[list[str]] = None, store: Optional[AuthStore] = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 2

    settings = get_settings()
    owns_store = store is None
    if store is None:
        store = AuthStore(settings.database_url, timeout=settings.store_timeout_seconds)
    try:
        return args.handler(args, settings, store)
    except AuthError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        if owns_store:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
