from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, Request, status

from src.config import settings
from src.domain.provider_errors import provider_http_exception
from src.models.social import (
    AccountsResponse,
    BatchInvitationItem,
    BatchInvitationRequest,
    BatchInvitationResponse,
    DisconnectRequest,
    DisconnectResponse,
    PlatformInfo,
    PlatformStatusResponse,
    ProfileLookupResponse,
    SendInvitationRequest,
    SendInvitationResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from src.observability import incr_metric, log_event
from src.providers.unipile.client import UnipileProviderError
from src.providers.unipile.platforms import (
    FEATURE_INVITE,
    FEATURE_LOOKUP,
    FEATURE_MESSAGE,
    PLATFORMS,
    UnsupportedPlatformFeature,
    credentials_configured,
    disconnect_account as disconnect_platform_account,
    get_account as get_platform_account,
    get_platform,
    list_accounts_by_platform,
    require_feature,
)


router = APIRouter(prefix="/api/social-integration", tags=["social-integration"])


def _request_id(request: Request | None) -> str | None:
    if not request:
        return None
    return getattr(getattr(request, "state", None), "request_id", None)


def _platform_or_404(name: str, feature: str | None = None):
    platform = get_platform(name)
    if platform is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unsupported platform: {name}")
    if feature is not None:
        try:
            require_feature(platform, feature)
        except UnsupportedPlatformFeature as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return platform


def _resolve_provider_id(platform, account_id: str, profile: str | None, provider_id: str | None) -> tuple[str, str | None]:
    """Provider id plus display name; looks the profile up when no id was given."""
    if provider_id:
        return provider_id, None
    if not profile:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="profile or provider_id is required")
    if FEATURE_LOOKUP not in platform.features:
        # Platforms without lookup address recipients by the raw identifier.
        identifier = platform.extract_identifier(profile)
        if not identifier:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid recipient identifier")
        return identifier, None
    try:
        found = platform.lookup(account_id, profile)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return found["provider_id"], found.get("profile_name")


@router.get("/platforms", response_model=list[PlatformInfo])
async def list_platforms():
    return [
        PlatformInfo(
            name=platform.name,
            display_name=platform.display_name,
            provider=platform.provider,
            features=sorted(platform.features),
        )
        for platform in PLATFORMS.values()
    ]


@router.get("/{platform_name}/lookup", response_model=ProfileLookupResponse)
async def lookup_profile(
    platform_name: str,
    account_id: str = Query(..., min_length=1),
    profile: str = Query(..., min_length=1),
):
    platform = _platform_or_404(platform_name, FEATURE_LOOKUP)
    try:
        found = platform.lookup(account_id, profile)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except UnipileProviderError as exc:
        raise provider_http_exception(provider="unipile", operation="lookup_profile", exc=exc) from exc
    return ProfileLookupResponse(**{key: value for key, value in found.items() if key != "raw"})


@router.post("/{platform_name}/send-invitation", response_model=SendInvitationResponse)
async def send_invitation(platform_name: str, data: SendInvitationRequest, request: Request):
    platform = _platform_or_404(platform_name, FEATURE_INVITE)
    try:
        provider_id, profile_name = _resolve_provider_id(platform, data.account_id, data.profile, data.provider_id)
        result = platform.invite(data.account_id, provider_id, data.message)
    except UnipileProviderError as exc:
        incr_metric("outbound.invitation", platform=platform.name, outcome="failed")
        raise provider_http_exception(provider="unipile", operation="send_invitation", exc=exc) from exc

    outcome = "already_sent" if result.get("already_sent") else "sent"
    incr_metric("outbound.invitation", platform=platform.name, outcome=outcome)
    log_event(
        "invitation_sent",
        request_id=_request_id(request),
        platform=platform.name,
        account_id=data.account_id,
        provider_id=provider_id,
        already_sent=bool(result.get("already_sent")),
    )
    return SendInvitationResponse(
        success=True,
        already_sent=bool(result.get("already_sent")),
        provider_id=provider_id,
        profile_name=profile_name,
        data=result.get("data"),
    )


@router.post("/{platform_name}/batch-send-invitations", response_model=BatchInvitationResponse)
async def batch_send_invitations(platform_name: str, data: BatchInvitationRequest, request: Request):
    platform = _platform_or_404(platform_name, FEATURE_INVITE)
    delay_ms = data.delay_ms if data.delay_ms is not None else settings.batch_invitation_delay_ms
    results: list[BatchInvitationItem] = []

    for index, recipient in enumerate(data.recipients):
        item = BatchInvitationItem(
            profile=recipient.profile,
            provider_id=recipient.provider_id,
            name=recipient.name,
            status="failed",
        )
        try:
            provider_id, _ = _resolve_provider_id(platform, data.account_id, recipient.profile, recipient.provider_id)
            item.provider_id = provider_id
            result = platform.invite(data.account_id, provider_id, data.message)
            item.status = "already_sent" if result.get("already_sent") else "sent"
        except HTTPException as exc:
            item.error = str(exc.detail)
        except UnipileProviderError as exc:
            item.error = str(exc)
        results.append(item)
        incr_metric("outbound.invitation", platform=platform.name, outcome=item.status)

        if index < len(data.recipients) - 1 and delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    response = BatchInvitationResponse(
        total=len(results),
        successful=sum(1 for item in results if item.status == "sent"),
        already_sent=sum(1 for item in results if item.status == "already_sent"),
        failed=sum(1 for item in results if item.status == "failed"),
        results=results,
    )
    log_event(
        "invitation_batch_completed",
        level=logging.WARNING if response.failed else logging.INFO,
        request_id=_request_id(request),
        platform=platform.name,
        total=response.total,
        successful=response.successful,
        already_sent=response.already_sent,
        failed=response.failed,
    )
    return response


@router.post("/{platform_name}/send-message", response_model=SendMessageResponse)
async def send_message(platform_name: str, data: SendMessageRequest, request: Request):
    platform = _platform_or_404(platform_name, FEATURE_MESSAGE)
    try:
        provider_id, _ = _resolve_provider_id(platform, data.account_id, data.profile, data.provider_id)
        result = platform.message(data.account_id, provider_id, data.message)
    except UnipileProviderError as exc:
        incr_metric("outbound.message", platform=platform.name, outcome="failed")
        raise provider_http_exception(provider="unipile", operation="send_message", exc=exc) from exc

    incr_metric("outbound.message", platform=platform.name, outcome="sent")
    log_event(
        "message_sent",
        request_id=_request_id(request),
        platform=platform.name,
        account_id=data.account_id,
        provider_id=provider_id,
    )
    return SendMessageResponse(success=True, provider_id=provider_id, data=result.get("data"))


@router.get("/accounts", response_model=AccountsResponse)
async def list_accounts():
    try:
        grouped = list_accounts_by_platform()
    except UnipileProviderError as exc:
        raise provider_http_exception(provider="unipile", operation="list_accounts", exc=exc) from exc
    return AccountsResponse(
        success=True,
        accounts=grouped,
        total=sum(len(accounts) for accounts in grouped.values()),
    )


@router.get("/{platform_name}/status", response_model=PlatformStatusResponse, response_model_exclude_none=True)
async def platform_status(platform_name: str, account_id: str | None = Query(default=None)):
    platform = _platform_or_404(platform_name)
    if not account_id:
        configured = credentials_configured()
        return PlatformStatusResponse(
            success=True,
            platform=platform.name,
            configured=configured,
            message="Platform is configured and ready" if configured else "Platform credentials not configured",
        )
    try:
        account = get_platform_account(account_id)
    except UnipileProviderError as exc:
        raise provider_http_exception(provider="unipile", operation="get_account", exc=exc) from exc
    return PlatformStatusResponse(success=True, platform=platform.name, connected=True, account=account)


@router.post("/{platform_name}/disconnect", response_model=DisconnectResponse)
async def disconnect(platform_name: str, data: DisconnectRequest, request: Request):
    platform = _platform_or_404(platform_name)
    if not data.account_id or not data.account_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="account_id is required")
    try:
        result = disconnect_platform_account(data.account_id)
    except UnipileProviderError as exc:
        incr_metric("account.disconnect", platform=platform.name, outcome="failed")
        raise provider_http_exception(provider="unipile", operation="disconnect_account", exc=exc) from exc

    incr_metric("account.disconnect", platform=platform.name, outcome="disconnected")
    log_event(
        "account_disconnected",
        request_id=_request_id(request),
        platform=platform.name,
        account_id=data.account_id,
    )
    return DisconnectResponse(success=True, platform=platform.name, account_id=data.account_id, data=result.get("data"))
