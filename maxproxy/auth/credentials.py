"""Credential resolution for the upstream API.

Sources are tried in order and the first one yielding a token wins. A
source that fails (missing file, bad JSON, keychain error) is treated as
"nothing here" and the provider moves on to the next one.
"""

from __future__ import annotations

import asyncio
import json
import logging
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, Sequence

from ..core.exceptions import CredentialsExpiredError, CredentialsMissingError

logger = logging.getLogger("maxproxy")

AUTH_PROFILES_PATH = "~/.clawdbot/agents/main/agent/auth-profiles.json"
CLAUDE_CREDENTIALS_PATH = "~/.claude/.credentials.json"
KEYCHAIN_SERVICE = "Claude Code-credentials"
KEYCHAIN_TIMEOUT_S = 5
EXPIRY_MARGIN = timedelta(minutes=5)


@dataclass(frozen=True)
class Credentials:
    """Opaque bearer token plus optional expiry (aware UTC datetime)."""

    access_token: str
    expires_at: Optional[datetime] = None
    source: str = ""


@dataclass
class CredentialStatus:
    ok: bool
    error: Optional[str] = None
    expires_at: Optional[datetime] = None


class CredentialSource(Protocol):
    name: str

    def read(self) -> Optional[Credentials]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch_ms(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    try:
        millis = float(value)
    except (TypeError, ValueError):
        return None
    if millis <= 0:
        return None
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


def is_valid(creds: Credentials, now: Optional[datetime] = None) -> bool:
    """A token with no expiry is always valid; otherwise now + 5 min < expiry."""
    if creds.expires_at is None:
        return True
    current = now or _utcnow()
    return creds.expires_at > current + EXPIRY_MARGIN


class StaticTokenSource:
    """Token supplied directly in configuration."""

    name = "config"

    def __init__(self, token: Optional[str]) -> None:
        self._token = token

    def read(self) -> Optional[Credentials]:
        token = (self._token or "").strip()
        # Unsubstituted ${VAR} placeholders are not tokens
        if not token or token.startswith("$"):
            return None
        return Credentials(access_token=token, source=self.name)


class AuthProfileStoreSource:
    """Managed auth-profile store (tokens there are refreshed for us)."""

    name = "auth_profiles"

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or AUTH_PROFILES_PATH).expanduser()

    def read(self) -> Optional[Credentials]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug("Auth profile store unavailable at %s: %s", self.path, exc)
            return None
        profiles = data.get("profiles") if isinstance(data, dict) else None
        if not isinstance(profiles, dict):
            return None

        default_profile = profiles.get("anthropic:default")
        if (
            isinstance(default_profile, dict)
            and default_profile.get("type") == "token"
            and default_profile.get("token")
        ):
            logger.info("[Auth] Using token from auth profile store (anthropic:default)")
            return Credentials(
                access_token=str(default_profile["token"]), source=self.name
            )

        cli_profile = profiles.get("anthropic:claude-cli")
        if (
            isinstance(cli_profile, dict)
            and cli_profile.get("type") == "oauth"
            and cli_profile.get("access")
        ):
            logger.info("[Auth] Using OAuth from auth profile store (anthropic:claude-cli)")
            return Credentials(
                access_token=str(cli_profile["access"]),
                expires_at=_from_epoch_ms(cli_profile.get("expires")),
                source=self.name,
            )
        return None


def _parse_claude_oauth(raw: str, source: str) -> Optional[Credentials]:
    data = json.loads(raw)
    oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
    if not isinstance(oauth, dict) or not oauth.get("accessToken"):
        return None
    return Credentials(
        access_token=str(oauth["accessToken"]),
        expires_at=_from_epoch_ms(oauth.get("expiresAt")),
        source=source,
    )


class ClaudeCredentialsFileSource:
    """The CLI's own credential file (used on Linux instead of the keychain)."""

    name = "claude_credentials"

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or CLAUDE_CREDENTIALS_PATH).expanduser()

    def read(self) -> Optional[Credentials]:
        try:
            creds = _parse_claude_oauth(self.path.read_text(encoding="utf-8"), self.name)
        except (OSError, ValueError) as exc:
            logger.debug("CLI credentials file unavailable at %s: %s", self.path, exc)
            return None
        if creds:
            logger.info("[Auth] Using credentials from %s", self.path)
        return creds


class KeychainSource:
    """macOS keychain entry written by the CLI."""

    name = "keychain"

    def __init__(
        self,
        service: str = KEYCHAIN_SERVICE,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        platform: Optional[str] = None,
    ) -> None:
        self.service = service
        self._runner = runner
        self._platform = platform or sys.platform

    def read(self) -> Optional[Credentials]:
        if self._platform != "darwin":
            return None
        try:
            result = self._runner(
                ["security", "find-generic-password", "-s", self.service, "-w"],
                capture_output=True,
                text=True,
                timeout=KEYCHAIN_TIMEOUT_S,
                check=True,
            )
            creds = _parse_claude_oauth(result.stdout.strip(), self.name)
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            logger.debug("Keychain lookup failed: %s", exc)
            return None
        if creds:
            logger.info("[Auth] Using credentials from Keychain")
        return creds


class CredentialProvider:
    """Resolves credentials from ordered sources and caches the last good set.

    The cache is refreshed lazily once the cached token fails the validity
    check. Concurrent refreshes are harmless: the last writer wins.
    """

    def __init__(self, sources: Sequence[CredentialSource]) -> None:
        self.sources = list(sources)
        self._cached: Optional[Credentials] = None

    def resolve(self) -> Optional[Credentials]:
        for source in self.sources:
            try:
                creds = source.read()
            except Exception as exc:
                logger.warning("Credential source %s failed: %s", source.name, exc)
                continue
            if creds:
                return creds
        return None

    def get_valid_credentials(self) -> Credentials:
        """Return cached or freshly resolved credentials.

        Raises:
            CredentialsMissingError: No source produced a token.
            CredentialsExpiredError: The resolved token is past its margin.
        """
        cached = self._cached
        if cached is not None and is_valid(cached):
            return cached

        creds = self.resolve()
        if creds is None:
            raise CredentialsMissingError()
        if not is_valid(creds):
            raise CredentialsExpiredError()

        self._cached = creds
        return creds

    async def aget_valid_credentials(self) -> Credentials:
        cached = self._cached
        if cached is not None and is_valid(cached):
            return cached
        # Source reads touch the filesystem or spawn `security`
        return await asyncio.to_thread(self.get_valid_credentials)

    def invalidate(self) -> None:
        self._cached = None

    def verify(self) -> CredentialStatus:
        """Report credential availability without raising."""
        creds = self.resolve()
        if creds is None:
            return CredentialStatus(ok=False, error="No credentials found")
        if not is_valid(creds):
            return CredentialStatus(
                ok=False, error="Credentials expired", expires_at=creds.expires_at
            )
        return CredentialStatus(ok=True, expires_at=creds.expires_at)


def build_credential_provider(auth_settings: Any) -> CredentialProvider:
    """Build a provider from ``AuthSettings`` (source names in order)."""
    factories: dict[str, Callable[[], CredentialSource]] = {
        "config": lambda: StaticTokenSource(auth_settings.api_key),
        "auth_profiles": lambda: AuthProfileStoreSource(auth_settings.auth_profiles_path),
        "claude_credentials": lambda: ClaudeCredentialsFileSource(
            auth_settings.claude_credentials_path
        ),
        "keychain": KeychainSource,
    }
    sources: list[CredentialSource] = []
    for name in auth_settings.sources:
        factory = factories.get(name)
        if factory is None:
            logger.warning("Unknown credential source '%s' ignored", name)
            continue
        sources.append(factory())
    return CredentialProvider(sources)
