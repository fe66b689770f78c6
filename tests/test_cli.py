"""Tests for the command-line entry point (main.py).

Commands run through main() with an injected AuthService and a scripted
prompt in place of getpass, so nothing touches the terminal or a real DB.

Covers:
- create / rename / repass / delete, with and without --sudo
- unique / lookup / obtain / reveal
- generate / retrieve / identify
- allow / deny / check / list, gate enforced unless --sudo
- exit status and "[!] message (code)" output on typed failures
"""

from collections.abc import Iterable

import pytest

import main as cli
from auth.service import AuthService


def scripted(*answers: str):
    """Return a prompt() replacement that replays answers in order."""
    queue: Iterable[str] = iter(answers)

    def prompt(_label: str) -> str:
        return next(queue)

    return prompt


def run(service: AuthService, argv: list[str], *answers: str) -> int:
    return cli.main(argv, prompt=scripted(*answers), service=service)


# ---------------------------------------------------------------------------
# User commands
# ---------------------------------------------------------------------------


class TestUserCommands:
    def test_create(self, service: AuthService, capsys) -> None:
        assert run(service, ["create", "alice"], "secret1", "secret1") == 0
        user_id = service.find_by_name("alice")
        out = capsys.readouterr().out
        assert "Successfully created!" in out
        assert user_id in out

    def test_create_prompts_for_name(self, service: AuthService) -> None:
        assert run(service, ["create"], "alice", "secret1", "secret1") == 0
        assert service.find_by_name("alice")

    def test_create_confirmation_mismatch(self, service: AuthService, capsys) -> None:
        assert run(service, ["create", "alice"], "secret1", "secret2") == 1
        assert "(user_pass_mismatch)" in capsys.readouterr().out
        assert service.page_names(10) == []

    def test_create_invalid_name(self, service: AuthService, capsys) -> None:
        assert run(service, ["create", "ab"], "secret1", "secret1") == 1
        assert "[!]" in capsys.readouterr().out

    def test_rename(self, service: AuthService, alice) -> None:
        assert run(service, ["rename", "alice", "alice_w"], "secret1") == 0
        assert service.find_by_id(alice[0]) == "alice_w"

    def test_rename_wrong_password(self, service: AuthService, alice, capsys) -> None:
        assert run(service, ["rename", "alice", "alice_w"], "wrong!!") == 1
        assert "(user_pass_failed)" in capsys.readouterr().out
        assert service.find_by_id(alice[0]) == "alice"

    def test_sudo_rename_skips_password(self, service: AuthService, alice) -> None:
        assert run(service, ["--sudo", "rename", "alice", "alice_w"]) == 0
        assert service.find_by_id(alice[0]) == "alice_w"

    def test_repass(self, service: AuthService, alice, capsys) -> None:
        user_id, old_code = alice
        assert run(service, ["repass", "alice"], "secret1", "secret2", "secret2") == 0
        new_code = service.recover_token(user_id, "secret2")
        assert new_code != old_code
        assert new_code in capsys.readouterr().out

    def test_delete(self, service: AuthService, alice) -> None:
        assert run(service, ["delete", "alice"], "secret1") == 0
        assert service.page_ids(10) == []

    def test_unique_and_lookup(self, service: AuthService, alice, capsys) -> None:
        user_id, _ = alice
        assert run(service, ["unique", "alice"]) == 0
        assert user_id in capsys.readouterr().out
        assert run(service, ["lookup", user_id]) == 0
        assert "alice" in capsys.readouterr().out

    def test_lookup_unknown(self, service: AuthService, capsys) -> None:
        assert run(service, ["lookup", "nope"]) == 1
        assert "(user_entry_miss)" in capsys.readouterr().out

    def test_obtain_and_reveal(self, service: AuthService, capsys) -> None:
        ids = [service.register(name, "secret1") for name in ("bob", "amy", "cat")]
        capsys.readouterr()
        assert run(service, ["reveal", "2"]) == 0
        assert "amy, bob" in capsys.readouterr().out
        assert run(service, ["obtain", "2", "1"]) == 0
        assert ids[2] in capsys.readouterr().out

    def test_obtain_bad_size(self, service: AuthService, capsys) -> None:
        assert run(service, ["obtain", "0"]) == 1
        assert "(page_invalid)" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Token commands
# ---------------------------------------------------------------------------


class TestTokenCommands:
    def test_generate(self, service: AuthService, alice, capsys) -> None:
        user_id, old_code = alice
        assert run(service, ["generate", "alice"], "secret1") == 0
        new_code = service.recover_token(user_id, "secret1")
        assert new_code != old_code
        assert new_code in capsys.readouterr().out

    def test_retrieve(self, service: AuthService, alice, capsys) -> None:
        assert run(service, ["retrieve", "alice"], "secret1") == 0
        assert alice[1] in capsys.readouterr().out

    def test_retrieve_wrong_password(self, service: AuthService, alice) -> None:
        assert run(service, ["retrieve", "alice"], "wrong!!") == 1

    def test_identify(self, service: AuthService, alice, capsys) -> None:
        assert run(service, ["identify"], alice[1]) == 0
        assert alice[0] in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Privilege commands
# ---------------------------------------------------------------------------


class TestPrivilegeCommands:
    def test_allow_requires_privilege(self, service: AuthService, alice, capsys) -> None:
        _, code = alice
        assert run(service, ["allow", "theme", "dark"], code, code) == 1
        assert "(privilege_pair_failed)" in capsys.readouterr().out

    def test_sudo_allow_check_list_deny(self, service: AuthService, alice, capsys) -> None:
        _, code = alice
        assert run(service, ["--sudo", "allow", "theme", "dark"], code) == 0
        assert service.get_privilege(code, "theme") == "dark"

        assert run(service, ["check", "theme"], code) == 0
        assert "theme = 'dark'" in capsys.readouterr().out

        assert run(service, ["list"], code) == 0
        assert "theme = 'dark'" in capsys.readouterr().out

        assert run(service, ["--sudo", "deny", "theme"], code) == 0
        assert service.get_privilege(code, "theme") is None

    def test_delegated_allow(self, service: AuthService, alice) -> None:
        _, code = alice
        bob_id = service.register("bob", "secret1")
        bob_code = service.recover_token(bob_id, "secret1")
        service.set_privilege(service.root_secret, code, "manage-privilege", "1")
        assert run(service, ["allow", "theme", "dark"], bob_code, code) == 0
        assert service.get_privilege(bob_code, "theme") == "dark"

    def test_check_unset(self, service: AuthService, alice, capsys) -> None:
        assert run(service, ["check", "theme"], alice[1]) == 0
        assert "Privilege not set." in capsys.readouterr().out


class TestParser:
    def test_no_command_prints_help(self, service: AuthService, capsys) -> None:
        assert cli.main([], prompt=scripted(), service=service) == 0
        assert "usage:" in capsys.readouterr().out

    def test_page_arguments_are_integers(self) -> None:
        args = cli.build_parser().parse_args(["obtain", "20"])
        assert args.size == 20
        assert args.page == 0

    def test_non_integer_size_rejected(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["obtain", "many"])
