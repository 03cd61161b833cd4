"""ICE credential broker.

Fetches short-lived TURN/STUN credentials from Twilio's Network Traversal
Service and falls back to a public STUN-only configuration whenever that is
not possible.

Usage:
    from linkdesk.services.integrations.ice_broker import IceCredentialBroker

    broker = IceCredentialBroker()
    ice = await broker.get()
    if ice.degraded:
        ...  # STUN-only, ice.warning explains why
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from linkdesk.app_config import AppEnvironConfig, get_app_environ_config
from linkdesk.schemas import IceConfiguration, IceServer
from linkdesk.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

STUN_ONLY_WARNING = "TURN_UNAVAILABLE_USING_STUN_ONLY"


def normalize_ice_servers(value: Any) -> list[IceServer]:
    """Map provider entries onto RTCIceServer-shaped descriptors.

    Entries without any URL are skipped. Twilio sends both the legacy `url`
    and the standard `urls` field; `urls` wins.
    """
    servers: list[IceServer] = []
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return servers

    for entry in value:
        if isinstance(entry, str):
            servers.append(IceServer(urls=entry))
            continue
        if not isinstance(entry, dict):
            continue
        urls = entry.get("urls") or entry.get("url")
        if isinstance(urls, list):
            urls = [item for item in urls if isinstance(item, str)]
        if not urls or not isinstance(urls, (str, list)):
            continue
        servers.append(
            IceServer(
                urls=urls,
                username=entry.get("username"),
                credential=entry.get("credential"),
            )
        )
    return servers


class IceCredentialBroker:
    """Supplies ICE configurations; `get()` never raises."""

    def __init__(
        self,
        cfg: AppEnvironConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cfg = cfg or get_app_environ_config()
        self._transport = transport
        if self._cfg.twilio_configured:
            logger.info("IceCredentialBroker initialized (Twilio enabled)")
        else:
            logger.info("IceCredentialBroker initialized without Twilio credentials, STUN-only")

    def fallback(self) -> IceConfiguration:
        return IceConfiguration(
            ice_servers=[IceServer(urls=self._cfg.FALLBACK_STUN_URL)],
            warning=STUN_ONLY_WARNING,
        )

    async def get(self) -> IceConfiguration:
        try:
            servers = await self._fetch_from_twilio()
        except AppError as exc:
            logger.warning(f"ICE fetch failed: {exc.errcode} {exc.erresid} {exc.errmesg}")
            return self.fallback()
        except Exception as exc:
            logger.warning(f"ICE fetch failed: {type(exc).__name__}: {exc}")
            return self.fallback()

        logger.debug(f"ICE fetch returned {len(servers)} server(s)")
        return IceConfiguration(ice_servers=servers)

    async def _fetch_from_twilio(self) -> list[IceServer]:
        if not self._cfg.twilio_configured:
            raise AppError(
                errcode=AppErrorCode.E_CREDENTIAL_PROVIDER,
                errmesg="Twilio credentials are not configured",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        account_sid = self._cfg.TWILIO_ACCOUNT_SID
        url = f"{self._cfg.TWILIO_API_BASE_URL.rstrip('/')}/Accounts/{account_sid}/Tokens.json"

        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._cfg.ICE_FETCH_TIMEOUT
        ) as client:
            response = await client.post(
                url,
                data={"Ttl": str(self._cfg.TWILIO_TOKEN_TTL)},
                auth=(account_sid, self._cfg.TWILIO_AUTH_TOKEN),  # type: ignore[arg-type]
            )
            response.raise_for_status()
            data = response.json()

        servers = normalize_ice_servers(data.get("ice_servers") if isinstance(data, dict) else None)
        if not servers:
            raise AppError(
                errcode=AppErrorCode.E_CREDENTIAL_PROVIDER,
                errmesg="Twilio token response carried no ICE servers",
                status_code=HttpStatusCode.BAD_GATEWAY,
            )
        return servers
