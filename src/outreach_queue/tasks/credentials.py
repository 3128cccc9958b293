"""Credential providers that authorize queue store access."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from outreach_queue.storage.common import utc_now

ACCESS_TOKEN_ENV = "OUTREACH_QUEUE_ACCESS_TOKEN"


@dataclass(frozen=True, slots=True)
class Credential:
    """Delegated access credential for the queue store."""

    access_token: str
    user_id: str | None = None
    expires_at: datetime | None = None

    def is_usable(self, now: datetime | None = None) -> bool:
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return (now or utc_now()) < self.expires_at


class CredentialProvider(Protocol):
    """Supplies the credential currently available, if any."""

    def current(self) -> Credential | None:
        """Return a credential or ``None`` when signed out."""


def has_usable_credential(provider: CredentialProvider, now: datetime | None = None) -> bool:
    credential = provider.current()
    return credential is not None and credential.is_usable(now)


class TokenStore:
    """Mutable in-process credential holder updated on sign-in/sign-out."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._credential: Credential | None = None

    def set_tokens(
        self,
        access_token: str,
        *,
        user_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        with self._lock:
            self._credential = Credential(
                access_token=access_token,
                user_id=user_id,
                expires_at=expires_at,
            )

    def clear(self) -> None:
        with self._lock:
            self._credential = None

    def current(self) -> Credential | None:
        with self._lock:
            return self._credential


class StaticCredentialProvider:
    def __init__(self, credential: Credential | None) -> None:
        self._credential = credential

    def current(self) -> Credential | None:
        return self._credential


class EnvCredentialProvider:
    """Reads the access token from the environment on every call."""

    def __init__(self, env_var: str = ACCESS_TOKEN_ENV) -> None:
        self.env_var = env_var

    def current(self) -> Credential | None:
        token = os.getenv(self.env_var, "").strip()
        if not token:
            return None
        return Credential(access_token=token)
