"""Command-line helper for registering users and minting access tokens.

    python -m chefchat.users_cli add "Alice" alice@example.com
    python -m chefchat.users_cli token <user_id>
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import get_config, get_data_dir
from .identity.provider import IdentityProvider, UserDirectory

logger = logging.getLogger(__name__)


def _identity(data_dir: Optional[Path] = None) -> IdentityProvider:
    data_dir = data_dir or get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return IdentityProvider(
        UserDirectory(data_dir / "users.json"),
        token_ttl_seconds=get_config().auth.token_ttl_seconds,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chefchat-users")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="register a user and print a token")
    add.add_argument("name")
    add.add_argument("email", nargs="?", default="")

    token = sub.add_parser("token", help="print a fresh token for an existing user")
    token.add_argument("user_id")
    return parser


def main(argv: Optional[list[str]] = None, data_dir: Optional[Path] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    identity = _identity(data_dir)

    if args.command == "add":
        if args.email and identity.directory.find_by_email(args.email):
            print(f"User with email {args.email} already exists", file=sys.stderr)
            return 1
        user = identity.directory.add_user(args.name, args.email)
        print(f"{user.id}\t{identity.issue_token(user.id)}")
        return 0

    user = identity.get_user(args.user_id)
    if user is None:
        print(f"Unknown user {args.user_id}", file=sys.stderr)
        return 1
    print(identity.issue_token(user.id))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
