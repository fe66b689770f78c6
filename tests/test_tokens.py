"""Unit tests for auth/tokens.py -- TokenVault.

Covers:
- issue(): one token per user, replacement orphans the old code
- mint() seals without writing; store() persists a minted code
- recover(): wrong password vs tampered payload vs missing row
- identify(): replaced, malformed and unknown codes look the same
- at-rest format: no plaintext code, mask is a digest, kdf recorded per row
"""

import pytest
from sqlalchemy import select

from auth import crypto
from auth.db import Database, tokens
from auth.service import AuthService
from auth.tokens import TokenVault
from core.config import Settings
from core.errors import BadCredential, IntegrityError, TokenNotFound, UserNotFound


class TestIssue:
    def test_issue_replaces_previous_code(self, service: AuthService, alice) -> None:
        user_id, old_code = alice
        new_code = service.issue_token(user_id, "secret1")
        assert new_code != old_code
        assert service.identify(new_code) == user_id
        with pytest.raises(TokenNotFound):
            service.identify(old_code)

    def test_one_row_per_owner(self, service: AuthService, db: Database, alice) -> None:
        user_id, _ = alice
        service.issue_token(user_id, "secret1")
        service.issue_token(user_id, "secret1")
        with db.engine.connect() as conn:
            rows = conn.execute(select(tokens.c.owner_id).where(tokens.c.owner_id == user_id)).fetchall()
        assert len(rows) == 1

    def test_issue_requires_password(self, service: AuthService, alice) -> None:
        user_id, code = alice
        with pytest.raises(BadCredential):
            service.issue_token(user_id, "wrong!!")
        assert service.identify(code) == user_id

    def test_issue_for_unknown_owner(self, service: AuthService) -> None:
        with pytest.raises(UserNotFound):
            service.vault.issue("00000000-0000-0000-0000-000000000000", "secret1")

    def test_mint_writes_nothing(self, service: AuthService, alice) -> None:
        user_id, code = alice
        minted = service.vault.mint("secret1")
        assert service.identify(code) == user_id
        with pytest.raises(TokenNotFound):
            service.identify(minted.text)
        assert minted.mask == crypto.mask_text(minted.text)

    def test_store_minted_code(self, service: AuthService, alice) -> None:
        user_id, old_code = alice
        minted = service.vault.mint("secret1")
        assert service.vault.store(user_id, minted) == minted.text
        assert service.identify(minted.text) == user_id
        assert service.recover_token(user_id, "secret1") == minted.text
        with pytest.raises(TokenNotFound):
            service.identify(old_code)

    def test_issued_code_is_url_safe_text(self, service: AuthService, alice) -> None:
        _, code = alice
        assert crypto.decode_code(code) is not None
        assert all(c.isalnum() or c in "-_=" for c in code)


class TestRecover:
    def test_recover_returns_current_code(self, service: AuthService, alice) -> None:
        user_id, code = alice
        assert service.recover_token(user_id, "secret1") == code

    def test_recover_after_reissue(self, service: AuthService, alice) -> None:
        user_id, _ = alice
        new_code = service.issue_token(user_id, "secret1")
        assert service.recover_token(user_id, "secret1") == new_code

    def test_wrong_password(self, service: AuthService, alice) -> None:
        with pytest.raises(BadCredential):
            service.recover_token(alice[0], "secret2")

    def test_unknown_owner(self, service: AuthService) -> None:
        with pytest.raises(TokenNotFound):
            service.recover_token("00000000-0000-0000-0000-000000000000", "secret1")

    def test_tampered_ciphertext(self, service: AuthService, db: Database, alice) -> None:
        user_id, _ = alice
        with db.engine.begin() as conn:
            stored = conn.execute(select(tokens.c.ciphertext).where(tokens.c.owner_id == user_id)).scalar_one()
            conn.execute(
                tokens.update()
                .where(tokens.c.owner_id == user_id)
                .values(ciphertext=bytes([stored[0] ^ 0xFF]) + stored[1:])
            )
        with pytest.raises(IntegrityError):
            service.recover_token(user_id, "secret1")

    def test_tampered_tag(self, service: AuthService, db: Database, alice) -> None:
        user_id, _ = alice
        with db.engine.begin() as conn:
            conn.execute(tokens.update().where(tokens.c.owner_id == user_id).values(tag=b"\x00" * 16))
        with pytest.raises(IntegrityError):
            service.recover_token(user_id, "secret1")

    def test_wrong_password_wins_over_tampering(self, service: AuthService, db: Database, alice) -> None:
        user_id, _ = alice
        with db.engine.begin() as conn:
            conn.execute(tokens.update().where(tokens.c.owner_id == user_id).values(tag=b"\x00" * 16))
        with pytest.raises(BadCredential):
            service.recover_token(user_id, "secret2")

    @pytest.mark.parametrize(
        "kdf",
        [
            "garbage",
            "argon2id$t=1$m=1$p=1",
            "argon2id$t=-1$m=64$p=1",
            "argon2id$t=1$m=99999999999$p=1",
            "argon2id$t=0$m=64$p=1",
        ],
    )
    def test_corrupt_kdf_column(self, service: AuthService, db: Database, alice, kdf: str) -> None:
        user_id, _ = alice
        with db.engine.begin() as conn:
            conn.execute(tokens.update().where(tokens.c.owner_id == user_id).values(kdf=kdf))
        with pytest.raises(IntegrityError):
            service.recover_token(user_id, "secret1")

    def test_recover_survives_kdf_setting_change(self, db: Database, alice, service: AuthService) -> None:
        """Each row records its own Argon2 parameters; new defaults only affect new seals."""
        user_id, code = alice
        stronger = Settings(bcrypt_rounds=4, kdf_time_cost=2, kdf_memory_cost=128, kdf_parallelism=1)
        assert TokenVault(db, stronger).recover(user_id, "secret1") == code


class TestIdentify:
    def test_identify(self, service: AuthService, alice) -> None:
        user_id, code = alice
        assert service.identify(code) == user_id

    @pytest.mark.parametrize("code", ["", "garbage", "AAAA"])
    def test_malformed(self, service: AuthService, code: str) -> None:
        with pytest.raises(TokenNotFound):
            service.identify(code)

    def test_never_issued(self, service: AuthService, alice) -> None:
        with pytest.raises(TokenNotFound):
            service.identify(crypto.encode_code(crypto.random_code()))

    def test_removed_owner(self, service: AuthService, alice) -> None:
        user_id, code = alice
        service.remove(user_id)
        with pytest.raises(TokenNotFound):
            service.identify(code)


class TestAtRest:
    def test_row_holds_no_plaintext(self, service: AuthService, alice) -> None:
        user_id, code = alice
        raw = crypto.decode_code(code)
        token = service.vault.get(user_id)
        assert token is not None
        assert token.sealed.ciphertext != raw
        assert raw not in token.sealed.ciphertext
        assert code not in token.mask

    def test_mask_is_digest_of_code(self, service: AuthService, alice) -> None:
        user_id, code = alice
        assert service.vault.get(user_id).mask == crypto.mask_text(code)

    def test_kdf_params_recorded(self, service: AuthService, alice) -> None:
        token = service.vault.get(alice[0])
        assert token.sealed.kdf == service.vault.kdf_params

    def test_get_unknown(self, service: AuthService) -> None:
        assert service.vault.get("00000000-0000-0000-0000-000000000000") is None
