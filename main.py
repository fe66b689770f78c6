#!/usr/bin/env python3
"""
TokenVault -- command-line administration for users, tokens and privileges.

Usage:
  python main.py create alice
  python main.py rename alice alice_w
  python main.py repass alice
  python main.py delete alice
  python main.py unique alice            # name -> id
  python main.py lookup <id>             # id -> name
  python main.py obtain 20 0             # page of ids   (size, page)
  python main.py reveal 20 0             # page of names (size, page)
  python main.py generate alice          # issue a fresh code
  python main.py retrieve alice          # recover the current code
  python main.py identify                # code -> id (code read from prompt)
  python main.py allow theme dark        # set privilege on a code
  python main.py deny theme              # unset privilege on a code
  python main.py check theme
  python main.py list
  python main.py --sudo allow manage-privilege 1

Passwords and codes are always read from a hidden prompt, never from argv.

--sudo runs the command with this process's root secret: privilege changes
pass the gate without an auth code, and rename/repass/delete skip the current
password prompt. The root secret is generated per process and never stored,
so sudo is only available to whoever can run this CLI against the database.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the store (default: auth/tokenvault.db)
"""

import argparse
import getpass
import logging
import os
import sys
from typing import Callable, Optional

from auth.db import Database
from auth.service import AuthService
from core.config import get_settings
from core.errors import PasswordMismatch, VaultError

Prompt = Callable[[str], str]

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

_GREEN = "\033[32m"
_RED = "\033[31m"
_MAGENTA = "\033[35m"
_RESET = "\033[0m"


def _use_color() -> bool:
    """Return True if stdout is a TTY and NO_COLOR is not set (https://no-color.org)."""
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def _say(message: str, color: str = "") -> None:
    if color and _use_color():
        message = f"{color}{message}{_RESET}"
    print(message)


def _ask(args: argparse.Namespace, attr: str, prompt: Prompt, label: str) -> str:
    """Positional argument if given, otherwise prompt for it."""
    value = getattr(args, attr, None)
    return value if value is not None else prompt(f"{label}: ")


# ---------------------------------------------------------------------------
# Commands
#
# Each handler receives (service, args, prompt) and returns the value it
# displayed, so tests can assert on it without scraping stdout.
# ---------------------------------------------------------------------------


def _verified_id(service: AuthService, args: argparse.Namespace, prompt: Prompt, name: str) -> str:
    if args.sudo:
        return service.find_by_name(name)
    return service.authenticate(name, prompt("Please enter your pass: "))


def _new_password(prompt: Prompt) -> str:
    password = prompt("Please choose your pass: ")
    if password != prompt("Please confirm your pass: "):
        raise PasswordMismatch()
    return password


def cmd_create(service, args, prompt):
    name = _ask(args, "name", prompt, "Please choose your name")
    user_id = service.register(name, _new_password(prompt))
    _say("Successfully created!", _GREEN)
    _say(user_id, _MAGENTA)
    return user_id


def cmd_rename(service, args, prompt):
    name = _ask(args, "name", prompt, "Please enter your old name")
    new_name = _ask(args, "new_name", prompt, "Please choose your new name")
    service.rename(_verified_id(service, args, prompt, name), new_name)
    _say("Successfully renamed!", _GREEN)
    return new_name


def cmd_repass(service, args, prompt):
    name = _ask(args, "name", prompt, "Please enter your name")
    user_id = _verified_id(service, args, prompt, name)
    code = service.change_password(user_id, _new_password(prompt))
    _say("Successfully repassed! Your previous token no longer works.", _GREEN)
    _say(code, _MAGENTA)
    return code


def cmd_delete(service, args, prompt):
    name = _ask(args, "name", prompt, "Please enter your name")
    service.remove(_verified_id(service, args, prompt, name))
    _say("Successfully deleted!", _GREEN)
    return None


def cmd_unique(service, args, prompt):
    user_id = service.find_by_name(_ask(args, "name", prompt, "Please enter a name"))
    _say("User found!", _GREEN)
    _say(user_id, _MAGENTA)
    return user_id


def cmd_lookup(service, args, prompt):
    name = service.find_by_id(_ask(args, "user_id", prompt, "Please enter a uuid"))
    _say("User found!", _GREEN)
    _say(name, _MAGENTA)
    return name


def cmd_obtain(service, args, prompt):
    ids = service.page_ids(args.size, args.page)
    _say("Users found!", _GREEN)
    _say(", ".join(ids), _MAGENTA)
    return ids


def cmd_reveal(service, args, prompt):
    names = service.page_names(args.size, args.page)
    _say("Users found!", _GREEN)
    _say(", ".join(names), _MAGENTA)
    return names


def cmd_generate(service, args, prompt):
    name = _ask(args, "name", prompt, "Please enter your name")
    user_id = service.find_by_name(name)
    code = service.issue_token(user_id, prompt("Please enter your pass: "))
    _say("Successfully generated!", _GREEN)
    _say(code, _MAGENTA)
    return code


def cmd_retrieve(service, args, prompt):
    name = _ask(args, "name", prompt, "Please enter your name")
    user_id = service.find_by_name(name)
    code = service.recover_token(user_id, prompt("Please enter your pass: "))
    _say("Successfully retrieved!", _GREEN)
    _say(code, _MAGENTA)
    return code


def cmd_identify(service, args, prompt):
    user_id = service.identify(prompt("Please enter a code: "))
    _say("Token found!", _GREEN)
    _say(user_id, _MAGENTA)
    return user_id


def _auth(service: AuthService, args: argparse.Namespace, prompt: Prompt) -> str:
    return service.root_secret if args.sudo else prompt("Please enter your own code: ")


def cmd_allow(service, args, prompt):
    code = prompt("Please enter the target code: ")
    key = _ask(args, "key", prompt, "Please enter a pkey")
    value = _ask(args, "value", prompt, "Please enter a pval")
    service.set_privilege(_auth(service, args, prompt), code, key, value)
    _say("Successfully allowed!", _GREEN)
    return None


def cmd_deny(service, args, prompt):
    code = prompt("Please enter the target code: ")
    key = _ask(args, "key", prompt, "Please enter a pkey")
    service.unset_privilege(_auth(service, args, prompt), code, key)
    _say("Successfully denied!", _GREEN)
    return None


def cmd_check(service, args, prompt):
    code = prompt("Please enter a code: ")
    key = _ask(args, "key", prompt, "Please enter a pkey")
    value = service.get_privilege(code, key)
    _say("Privilege found!" if value is not None else "Privilege not set.", _GREEN)
    _say(f"{key} = {value!r}", _MAGENTA)
    return value


def cmd_list(service, args, prompt):
    pairs = service.list_privileges(prompt("Please enter a code: "))
    _say("Privileges found!", _GREEN)
    for key, value in pairs.items():
        _say(f"{key} = {value!r}", _MAGENTA)
    return pairs


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokenvault",
        description="Manage users, sealed bearer tokens and token privileges.",
    )
    parser.add_argument("--sudo", action="store_true", help="Run the command with this process's root secret")
    parser.add_argument("--db", metavar="URL", default=None, help="SQLAlchemy database URL (overrides DATABASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log store activity to stderr")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    def add(name: str, handler, help_text: str, *positionals: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        for positional in positionals:
            p.add_argument(positional, nargs="?", default=None)
        p.set_defaults(handler=handler)
        return p

    # user
    add("create", cmd_create, "Creates a new user.", "name")
    add("rename", cmd_rename, "Changes a user's name.", "name", "new_name")
    add("repass", cmd_repass, "Changes a user's pass. Invalidates the previous token.", "name")
    add("delete", cmd_delete, "Deletes a user forever.", "name")
    add("unique", cmd_unique, "Prints a user's id.", "name")
    add("lookup", cmd_lookup, "Prints a user's name.", "user_id")
    for name, handler, help_text in (
        ("obtain", cmd_obtain, "Prints one page of user ids."),
        ("reveal", cmd_reveal, "Prints one page of user names."),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("size", type=int)
        p.add_argument("page", type=int, nargs="?", default=0)
        p.set_defaults(handler=handler)

    # token
    add("generate", cmd_generate, "Generates a fresh token for a user.", "name")
    add("retrieve", cmd_retrieve, "Prints a user's current token.", "name")
    add("identify", cmd_identify, "Prints the user id owning a token.")

    # privilege
    add("allow", cmd_allow, "Allows or updates a token's privilege.", "key", "value")
    add("deny", cmd_deny, "Deletes a token's privilege.", "key")
    add("check", cmd_check, "Prints one privilege value of a token.", "key")
    add("list", cmd_list, "Prints every privilege of a token.")
    return parser


def main(argv: Optional[list[str]] = None, prompt: Prompt = getpass.getpass, service: Optional[AuthService] = None) -> int:
    """Run one command. Returns the process exit status (0 ok, 1 failure)."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    owns_service = service is None
    if service is None:
        service = AuthService(Database(args.db or get_settings().database_url))
    try:
        args.handler(service, args, prompt)
    except VaultError as exc:
        _say(f"  [!] {exc} ({exc.code})", _RED)
        return 1
    finally:
        if owns_service:
            service.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
