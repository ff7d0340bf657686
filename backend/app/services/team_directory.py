"""Team roster and upstream credentials."""

import json
import logging
from typing import List, Optional

from pydantic import BaseModel

from app.config import settings
from app.services.member_names import MemberNameResolver
from app.utils.encrypt import decrypt_token

log = logging.getLogger(__name__)


class TeamMember(BaseModel):
    name: str
    token: str


class TeamDirectory:
    """
    Team roster parsed from TOGGL_TEAM ([{"name": ..., "token": ...}]).

    When ENCRYPTED_TOKENS is enabled, tokens are Fernet ciphertexts produced by
    scripts/encrypt_team_tokens.py and are decrypted here.
    """

    def __init__(
        self,
        raw_team: Optional[str] = None,
        resolver: Optional[MemberNameResolver] = None,
        encrypted_tokens: Optional[bool] = None,
    ):
        self.resolver = resolver or MemberNameResolver()
        self.encrypted_tokens = settings.encrypted_tokens if encrypted_tokens is None else encrypted_tokens
        self._members = self._parse(settings.toggl_team if raw_team is None else raw_team)

    def _parse(self, raw_team: str) -> List[TeamMember]:
        try:
            parsed = json.loads(raw_team or "[]")
        except ValueError:
            log.error("TOGGL_TEAM is not valid JSON; no team members configured")
            return []
        if not isinstance(parsed, list):
            return []

        members: List[TeamMember] = []
        seen = set()
        for item in parsed:
            if not isinstance(item, dict):
                continue
            name, token = item.get("name"), item.get("token")
            if not isinstance(name, str) or not isinstance(token, str):
                continue
            name = self.resolver.canonicalize(name)
            token = token.strip()
            if not name or not token or name.lower() in seen:
                continue
            if self.encrypted_tokens:
                try:
                    token = decrypt_token(token)
                except ValueError as e:
                    log.error(f"Skipping team member '{name}': {e}")
                    continue
            seen.add(name.lower())
            members.append(TeamMember(name=name, token=token))
        return members

    def members(self) -> List[TeamMember]:
        return list(self._members)

    def find(self, name: str) -> Optional[TeamMember]:
        for member in self._members:
            if self.resolver.names_match(member.name, name):
                return member
        return None
