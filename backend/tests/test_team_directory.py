import json

import pytest
from cryptography.fernet import Fernet

from app.services.member_names import MemberNameResolver
from app.services.team_directory import TeamDirectory
from app.utils.encrypt import decrypt_token, encrypt_token

ALIASES = {"Rahman": "Rehman", "Ana Maria": "Ana"}


class TestMemberNameResolver:
    def test_canonicalize_aliases_and_whitespace(self):
        resolver = MemberNameResolver(aliases=ALIASES)

        assert resolver.canonicalize("  rahman ") == "Rehman"
        assert resolver.canonicalize("Ana   Maria") == "Ana"
        assert resolver.canonicalize("Bea") == "Bea"
        assert resolver.canonicalize("   ") == ""

    def test_expand_aliases_starts_with_canonical(self):
        resolver = MemberNameResolver(aliases=ALIASES)

        assert resolver.expand_aliases("rahman") == ["Rehman", "Rahman"]
        assert resolver.expand_aliases("Bea") == ["Bea"]

    def test_names_match(self):
        resolver = MemberNameResolver(aliases=ALIASES)

        assert resolver.names_match("REHMAN", "rahman")
        assert not resolver.names_match("Ana", "Bea")
        assert not resolver.names_match("", "")


class TestTeamDirectory:
    def test_parses_and_dedupes_roster(self):
        raw = json.dumps([
            {"name": "Rahman", "token": "t1"},
            {"name": "rehman", "token": "t2"},
            {"name": "Bea", "token": " "},
            {"name": 5, "token": "t3"},
            "junk",
            {"name": "Ana", "token": "t4"},
        ])

        team = TeamDirectory(raw_team=raw, resolver=MemberNameResolver(aliases=ALIASES), encrypted_tokens=False)

        assert [(member.name, member.token) for member in team.members()] == [("Rehman", "t1"), ("Ana", "t4")]
        assert team.find("ana maria").name == "Ana"
        assert team.find("Zed") is None

    def test_invalid_json_gives_empty_team(self):
        assert TeamDirectory(raw_team="{not json", resolver=MemberNameResolver(aliases={})).members() == []

    def test_encrypted_tokens_are_decrypted(self):
        key = Fernet.generate_key().decode()
        raw = json.dumps([{"name": "Ana", "token": encrypt_token("secret", key)}])

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("app.utils.encrypt.settings.encryption_key", key)
            team = TeamDirectory(raw_team=raw, resolver=MemberNameResolver(aliases={}), encrypted_tokens=True)

        assert team.members()[0].token == "secret"

    def test_undecryptable_member_is_skipped(self):
        key = Fernet.generate_key().decode()
        raw = json.dumps([{"name": "Ana", "token": "not-a-ciphertext"}])

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("app.utils.encrypt.settings.encryption_key", key)
            team = TeamDirectory(raw_team=raw, resolver=MemberNameResolver(aliases={}), encrypted_tokens=True)

        assert team.members() == []


def test_decrypt_with_wrong_key_raises_value_error():
    token = encrypt_token("secret", Fernet.generate_key().decode())

    with pytest.raises(ValueError):
        decrypt_token(token, Fernet.generate_key().decode())
