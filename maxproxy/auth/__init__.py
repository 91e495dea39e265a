"""Upstream credential resolution."""

from .credentials import (
    AuthProfileStoreSource,
    ClaudeCredentialsFileSource,
    CredentialProvider,
    Credentials,
    CredentialSource,
    CredentialStatus,
    KeychainSource,
    StaticTokenSource,
    build_credential_provider,
    is_valid,
)

__all__ = [
    "AuthProfileStoreSource",
    "ClaudeCredentialsFileSource",
    "CredentialProvider",
    "CredentialSource",
    "CredentialStatus",
    "Credentials",
    "KeychainSource",
    "StaticTokenSource",
    "build_credential_provider",
    "is_valid",
]
