from __future__ import annotations

import asyncio

import pytest
from conftest import make_settings

from capsule_api.domain.exceptions import ValidationError

from capsule_api.identity import (
    BootstrapUser,
    IdentityStore,
    hash_password,
    load_bootstrap_users,
    parse_bootstrap_inline,
    parse_bootstrap_yaml,
    user_key,
)

USERS = [BootstrapUser("paula@example.com", "lene"), BootstrapUser("bruno@example.com", "linho")]


def test_bootstrap_twice_never_rehashes(store, db) -> None:
    identity = IdentityStore(store, bcrypt_rounds=4)

    async def scenario():
        first = await identity.ensure_bootstrap_users(USERS)
        hashes = {u.email: (await store.get(user_key(u.email)))["passwordHash"] for u in USERS}
        writes = db.writes
        second = await identity.ensure_bootstrap_users(USERS)
        again = {u.email: (await store.get(user_key(u.email)))["passwordHash"] for u in USERS}
        return first, second, hashes, again, writes

    first, second, hashes, again, writes = asyncio.run(scenario())
    assert first == ["paula@example.com", "bruno@example.com"]
    assert second == []
    assert hashes == again
    assert db.writes == writes
    assert all(h.startswith("$2") and "lene" not in h for h in hashes.values())


def test_verify_accepts_right_password_only(store) -> None:
    identity = IdentityStore(store, bcrypt_rounds=4)

    async def scenario():
        await identity.ensure_bootstrap_users(USERS)
        return (
            await identity.verify("paula@example.com", "lene"),
            await identity.verify("paula@example.com", "wrong"),
            await identity.verify("nobody@example.com", "lene"),
            await identity.verify("Paula@example.com", "lene"),
            await identity.verify("paula@example.com", ""),
        )

    assert asyncio.run(scenario()) == (True, False, False, False, False)


def test_verify_reads_records_from_first_deployments(store) -> None:
    legacy = {"email": "old@example.com", "password": hash_password("pw", rounds=4)}
    identity = IdentityStore(store, bcrypt_rounds=4)

    async def scenario():
        await store.set(user_key("old@example.com"), legacy)
        return await identity.verify("old@example.com", "pw")

    assert asyncio.run(scenario()) is True


def test_verify_rejects_non_bcrypt_hash(store) -> None:
    identity = IdentityStore(store)

    async def scenario():
        await store.set(user_key("x@example.com"), {"email": "x@example.com", "passwordHash": "plain"})
        return await identity.verify("x@example.com", "plain")

    assert asyncio.run(scenario()) is False


def test_parse_bootstrap_yaml_list_and_mapping() -> None:
    as_list = "- email: a@example.com\n  password: one\n- email: bad\n- just a string\n"
    as_map = "users:\n  - email: b@example.com\n    password: two\n"
    assert parse_bootstrap_yaml(as_list) == [BootstrapUser("a@example.com", "one")]
    assert parse_bootstrap_yaml(as_map) == [BootstrapUser("b@example.com", "two")]
    assert parse_bootstrap_yaml("") == []


def test_parse_bootstrap_inline_keeps_colons_in_password() -> None:
    assert parse_bootstrap_inline("a@example.com:p:w, broken ,b@example.com:x") == [
        BootstrapUser("a@example.com", "p:w"),
        BootstrapUser("b@example.com", "x"),
    ]


def test_load_bootstrap_users_merges_file_and_inline(tmp_path) -> None:
    users_file = tmp_path / "users.yaml"
    users_file.write_text("- email: a@example.com\n  password: from-file\n", encoding="utf-8")
    settings = make_settings(
        bootstrap_users_file=users_file,
        bootstrap_users="a@example.com:inline,c@example.com:three",
    )
    assert load_bootstrap_users(settings) == [
        BootstrapUser("a@example.com", "from-file"),
        BootstrapUser("c@example.com", "three"),
    ]


def test_parse_bootstrap_yaml_error_is_validation_error() -> None:
    with pytest.raises(ValidationError):
        parse_bootstrap_yaml("- email: [unclosed\n")


def test_every_failed_verify_pays_one_bcrypt_check(store, monkeypatch) -> None:
    identity = IdentityStore(store, bcrypt_rounds=4)
    asyncio.run(identity.ensure_bootstrap_users(USERS))

    import capsule_api.identity as identity_module

    real_check = identity_module.check_password
    checked: list[str] = []

    def counting_check(raw_password: str, password_hash: str) -> bool:
        checked.append(password_hash)
        return real_check(raw_password, password_hash)

    monkeypatch.setattr(identity_module, "check_password", counting_check)

    async def attempt(email: str, password: str) -> bool:
        return await identity.verify(email, password)

    for email, password in [
        ("nobody@example.com", "lene"),
        ("paula@example.com", "wrong"),
        ("paula@example.com", ""),
        ("", "lene"),
    ]:
        before = len(checked)
        assert asyncio.run(attempt(email, password)) is False
        assert len(checked) == before + 1

    assert checked[0] == checked[2] == checked[3]
    assert checked[1] != checked[0]
    assert all(h.startswith("$2") for h in checked)
