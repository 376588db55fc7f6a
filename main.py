#!/usr/bin/env python3
"""
PinSquirrel -- command-line administration.

Usage:
  python main.py create-user alice --email alice@example.com
  python main.py create-user root --role admin
  python main.py import-pinboard pinboard_export.json --username alice

The password for create-user is prompted for (never passed on the command
line, where it would land in shell history). Both commands use the database
named by DATABASE_URL, exactly like the API server.
"""

import argparse
import getpass
import logging
import sys

from auth.access import AccessControl, Principal
from auth.hashing import CredentialHasher
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings
from core.errors import PinSquirrelError
from pins.importer import import_pinboard, load_pinboard_export
from pins.service import PinService
from pins.store import PinStore


def _create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = args.password or getpass.getpass("Password: ")
    if not args.password and getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        return 1

    store = UserStore(settings.database_url)
    try:
        service = AuthenticationService(store, CredentialHasher(), TokenService(settings.secret_key))
        user = service.register(args.username, password, args.email)
        for role in args.role or []:
            store.add_role(user.id, role)
    except PinSquirrelError as exc:
        print(f"  [!] {exc.message}")
        for field_name, messages in exc.payload.get("field_errors", {}).items():
            for message in messages:
                print(f"      {field_name}: {message}")
        return 1
    finally:
        store.close()

    print(f"  Created user {args.username} ({user.id}).")
    return 0


def _import_pinboard(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        entries = load_pinboard_export(args.path)
    except ValueError as e:
        print(f"  [!] {e}")
        return 1

    user_store = UserStore(settings.database_url)
    pin_store = PinStore(settings.database_url)
    try:
        user = user_store.get_by_username(args.username)
        if user is None:
            print(f"  [!] No user named '{args.username}'.")
            return 1
        print(f"  Importing {len(entries)} bookmarks for {user.username}...")
        ac = AccessControl(Principal(id=user.id, username=user.username, roles=frozenset(user.roles)))
        result = import_pinboard(PinService(pin_store), ac, user.id, entries)
    finally:
        user_store.close()
        pin_store.close()

    print(f"  Imported {result.imported}, skipped {result.duplicates} duplicate(s), {result.invalid} invalid.")
    if args.verbose:
        for line in result.errors:
            print(f"    {line}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pinsquirrel",
        description="PinSquirrel administration commands.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_user = sub.add_parser("create-user", help="Create an account")
    p_user.add_argument("username")
    p_user.add_argument("--email", default=None, help="Optional email for password reset")
    p_user.add_argument(
        "--role",
        action="append",
        metavar="ROLE",
        help="Extra role to grant (repeatable). Every user has 'user'.",
    )
    # Intended for scripted setups; interactive use should rely on the prompt.
    p_user.add_argument("--password", default=None, help=argparse.SUPPRESS)
    p_user.set_defaults(func=_create_user)

    p_import = sub.add_parser("import-pinboard", help="Import a Pinboard JSON export")
    p_import.add_argument("path", metavar="PATH", help="Path to the Pinboard JSON export")
    p_import.add_argument("--username", required=True, help="Account that will own the imported pins")
    p_import.add_argument("-v", "--verbose", action="store_true", help="List skipped entries")
    p_import.set_defaults(func=_import_pinboard)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
