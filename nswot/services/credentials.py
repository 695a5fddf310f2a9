"""
Credential lookup boundary.

Secret storage lives outside nswot; it only needs a plaintext key per
provider, or None when none is stored.
"""

from typing import Dict, Optional, Protocol

from nswot.core.config import PROVIDER_KEY_ENV, Settings, get_settings
from nswot.core.exceptions import ErrorCode, ConfigurationError


class CredentialStore(Protocol):
    def get_api_key(self, provider: str) -> Optional[str]:
        ...


class EnvCredentialStore:
    """Reads provider API keys from settings (environment or .env)."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def get_api_key(self, provider: str) -> Optional[str]:
        return self.settings.llm.api_key_for(provider) or None


class StaticCredentialStore:
    """Fixed mapping of provider to key."""

    def __init__(self, keys: Dict[str, str]):
        self._keys = dict(keys)

    def get_api_key(self, provider: str) -> Optional[str]:
        return self._keys.get(provider) or None


def require_api_key(store: CredentialStore, provider: str) -> str:
    """Return the key for ``provider`` or raise SETTINGS_KEY_MISSING."""
    api_key = store.get_api_key(provider)
    if not api_key:
        env_var = PROVIDER_KEY_ENV.get(provider, "API key")
        raise ConfigurationError(
            f"No API key configured for {provider}. Set {env_var}.",
            code=ErrorCode.SETTINGS_KEY_MISSING,
            details={"provider": provider},
        )
    return api_key
