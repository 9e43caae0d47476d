"""Authentication module for mail providers.

Provides a provider-agnostic OAuth2 authorization-code grant with
in-memory token refresh.

Usage:
    from mailvault.auth import TokenManager, get_provider, prompt_for_code

    preset = get_provider("office365")
    tokens = TokenManager(consent=prompt_for_code)
    tokens.authorize(client_id, client_secret, preset.auth_url,
                     preset.token_url, preset.scope, preset.auth_params)
    token = tokens.get_valid_token()
"""

from .consent import extract_code, prompt_for_code
from .providers import PROVIDERS, ProviderPreset, get_provider
from .tokens import Credential, TokenManager

__all__ = [
    "TokenManager",
    "Credential",
    "ProviderPreset",
    "PROVIDERS",
    "get_provider",
    "prompt_for_code",
    "extract_code",
]
