"""OAuth endpoint presets for the supported mail providers.

Each preset carries what the authorization-code grant needs (endpoints,
scope, extra query parameters for the consent page). The matching remote
transport is chosen by provider name in ``mailvault.sync.factory``.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProviderPreset:
    """OAuth settings for one provider.

    Attributes:
        name: Provider key used in config.toml.
        auth_url: Authorization endpoint (user consent page).
        token_url: Token endpoint for code exchange and refresh.
        scope: Space separated scope string.
        auth_params: Extra query parameters for the authorization URL.
    """

    name: str
    auth_url: str
    token_url: str
    scope: str
    auth_params: dict[str, str] = field(default_factory=dict)


OFFICE365 = ProviderPreset(
    name="office365",
    auth_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
    token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
    # offline_access is what makes the token endpoint return a refresh token
    scope="offline_access mail.read",
)

GMAIL = ProviderPreset(
    name="gmail",
    auth_url="https://accounts.google.com/o/oauth2/auth",
    token_url="https://oauth2.googleapis.com/token",
    scope="https://www.googleapis.com/auth/gmail.readonly",
    # Google only issues a refresh token for offline access, and only on
    # the first consent unless prompt=consent is forced
    auth_params={"access_type": "offline", "prompt": "consent"},
)

PROVIDERS = {preset.name: preset for preset in (OFFICE365, GMAIL)}

DEFAULT_PROVIDER = OFFICE365.name


def get_provider(name: str) -> ProviderPreset:
    """Look up a provider preset by name.

    Raises:
        KeyError: If the provider is not supported.
    """
    try:
        return PROVIDERS[name]
    except KeyError:
        supported = ", ".join(sorted(PROVIDERS))
        raise KeyError(
            f"Provider '{name}' is not supported. Use one of: {supported}."
        ) from None
