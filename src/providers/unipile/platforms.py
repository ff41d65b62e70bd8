from __future__ import annotations

from typing import Any

from src.config import settings
from src.domain.normalization import extract_public_identifier
from src.providers.unipile import client as unipile


FEATURE_LOOKUP = "lookup"
FEATURE_INVITE = "invite"
FEATURE_MESSAGE = "message"


class UnsupportedPlatformFeature(Exception):
    def __init__(self, platform: str, feature: str) -> None:
        super().__init__(f"{platform} does not support {feature}")
        self.platform = platform
        self.feature = feature


def _credentials() -> dict[str, Any]:
    return {
        "dsn": settings.unipile_dsn,
        "token": settings.unipile_token,
        "timeout_seconds": settings.unipile_timeout_seconds,
    }


class LinkedInPlatform:
    name = "linkedin"
    provider = "LINKEDIN"
    display_name = "LinkedIn"
    features = frozenset({FEATURE_LOOKUP, FEATURE_INVITE, FEATURE_MESSAGE})

    def extract_identifier(self, profile: str) -> str | None:
        return extract_public_identifier(profile, "linkedin")

    def lookup(self, account_id: str, profile: str) -> dict[str, Any]:
        identifier = self.extract_identifier(profile)
        if not identifier:
            raise ValueError("Could not extract a LinkedIn public identifier")
        return unipile.lookup_profile(
            account_id=account_id,
            public_identifier=identifier,
            provider=self.provider,
            **_credentials(),
        )

    def invite(self, account_id: str, provider_id: str, message: str | None = None) -> dict[str, Any]:
        # LinkedIn caps invitation notes at 300 characters.
        note = message[:300] if message else None
        return unipile.send_invitation(
            account_id=account_id,
            provider_id=provider_id,
            provider=self.provider,
            message=note,
            **_credentials(),
        )

    def message(self, account_id: str, provider_id: str, text: str) -> dict[str, Any]:
        return unipile.send_message(
            account_id=account_id,
            provider_id=provider_id,
            message=text,
            provider=self.provider,
            **_credentials(),
        )


class InstagramPlatform:
    name = "instagram"
    provider = "INSTAGRAM"
    display_name = "Instagram"
    features = frozenset({FEATURE_LOOKUP, FEATURE_MESSAGE})

    def extract_identifier(self, profile: str) -> str | None:
        return extract_public_identifier(profile, "instagram")

    def lookup(self, account_id: str, profile: str) -> dict[str, Any]:
        identifier = self.extract_identifier(profile)
        if not identifier:
            raise ValueError("Could not extract an Instagram handle")
        return unipile.lookup_profile(
            account_id=account_id,
            public_identifier=identifier,
            provider=self.provider,
            **_credentials(),
        )

    def invite(self, account_id: str, provider_id: str, message: str | None = None) -> dict[str, Any]:
        raise UnsupportedPlatformFeature(self.name, FEATURE_INVITE)

    def message(self, account_id: str, provider_id: str, text: str) -> dict[str, Any]:
        return unipile.send_message(
            account_id=account_id,
            provider_id=provider_id,
            message=text,
            provider=self.provider,
            **_credentials(),
        )


class FacebookPlatform:
    name = "facebook"
    provider = "MESSENGER"
    display_name = "Facebook"
    features = frozenset({FEATURE_LOOKUP, FEATURE_INVITE, FEATURE_MESSAGE})

    def extract_identifier(self, profile: str) -> str | None:
        return extract_public_identifier(profile, "facebook")

    def lookup(self, account_id: str, profile: str) -> dict[str, Any]:
        identifier = self.extract_identifier(profile)
        if not identifier:
            raise ValueError("Could not extract a Facebook profile identifier")
        return unipile.lookup_profile(
            account_id=account_id,
            public_identifier=identifier,
            provider=self.provider,
            **_credentials(),
        )

    def invite(self, account_id: str, provider_id: str, message: str | None = None) -> dict[str, Any]:
        # Friend requests carry no note.
        return unipile.send_invitation(
            account_id=account_id,
            provider_id=provider_id,
            provider=self.provider,
            **_credentials(),
        )

    def message(self, account_id: str, provider_id: str, text: str) -> dict[str, Any]:
        return unipile.send_message(
            account_id=account_id,
            provider_id=provider_id,
            message=text,
            provider=self.provider,
            **_credentials(),
        )


class WhatsAppPlatform:
    name = "whatsapp"
    provider = "WHATSAPP"
    display_name = "WhatsApp"
    features = frozenset({FEATURE_MESSAGE})

    def extract_identifier(self, profile: str) -> str | None:
        digits = "".join(ch for ch in str(profile or "") if ch.isdigit())
        return digits or None

    def lookup(self, account_id: str, profile: str) -> dict[str, Any]:
        raise UnsupportedPlatformFeature(self.name, FEATURE_LOOKUP)

    def invite(self, account_id: str, provider_id: str, message: str | None = None) -> dict[str, Any]:
        raise UnsupportedPlatformFeature(self.name, FEATURE_INVITE)

    def message(self, account_id: str, provider_id: str, text: str) -> dict[str, Any]:
        # WhatsApp chats are addressed by phone number.
        identifier = self.extract_identifier(provider_id) or provider_id
        return unipile.send_message(
            account_id=account_id,
            provider_id=identifier,
            message=text,
            provider=self.provider,
            **_credentials(),
        )


PLATFORMS = {
    platform.name: platform
    for platform in (LinkedInPlatform(), InstagramPlatform(), FacebookPlatform(), WhatsAppPlatform())
}


def get_platform(name: str):
    return PLATFORMS.get(str(name or "").strip().lower())


def require_feature(platform, feature: str) -> None:
    if feature not in platform.features:
        raise UnsupportedPlatformFeature(platform.name, feature)


ACCOUNT_GROUPS = ("linkedin", "instagram", "whatsapp", "facebook", "other")


def credentials_configured() -> bool:
    return bool(settings.unipile_dsn and settings.unipile_token)


def account_group(account: dict[str, Any]) -> str:
    """Bucket a provider account by its `type` (`LINKEDIN`, `MESSENGER`, ...)."""
    kind = str(account.get("type") or account.get("provider") or "").strip().upper()
    for platform in PLATFORMS.values():
        if kind in (platform.provider, platform.name.upper()):
            return platform.name
    return "other"


def list_accounts_by_platform() -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {group: [] for group in ACCOUNT_GROUPS}
    for account in unipile.list_accounts(**_credentials()):
        if not isinstance(account, dict):
            continue
        grouped[account_group(account)].append(account)
    return grouped


def get_account(account_id: str) -> dict[str, Any]:
    return unipile.get_account(account_id=account_id, **_credentials())


def disconnect_account(account_id: str) -> dict[str, Any]:
    return unipile.disconnect_account(account_id=account_id, **_credentials())
