"""Thin async HTTP client for the Odoo REST bridge.

Endpoints and keys come from the active ``odoo_api_config`` row; the
``is_production_mode`` flag picks between the production and ``*_test``
columns. Odoo expects the raw API key in the ``Authorization`` header.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.exceptions import ExternalServiceError
from opsdesk.config import settings
from opsdesk.odoo.models import OdooApiConfig

logger = logging.getLogger(__name__)

RESOURCES = ("customer", "brand", "product", "sales_order", "purchase_order", "supplier")


@dataclass
class OdooResponse:
    status_code: int
    data: dict[str, Any] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


async def load_active_config(db: AsyncSession) -> OdooApiConfig:
    result = await db.execute(
        select(OdooApiConfig).where(OdooApiConfig.is_active.is_(True)).limit(1),
    )
    config = result.scalars().first()
    if config is None:
        raise ExternalServiceError("Odoo", "No active Odoo API configuration found")
    return config


class OdooClient:
    """``httpx.AsyncClient`` bound to one Odoo configuration.

    Use as an async context manager::

        async with OdooClient(config) as odoo:
            resp = await odoo.post(odoo.url("sales_order"), payload)
    """

    def __init__(
        self,
        config: OdooApiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.config = config
        self.is_production = bool(config.is_production_mode)
        self.api_key = (config.api_key if self.is_production else config.api_key_test) or ""
        self._http = httpx.AsyncClient(
            transport=transport,
            timeout=timeout or settings.ODOO_TIMEOUT_SECONDS,
            headers={
                "Authorization": self.api_key,
                "Content-Type": "application/json",
            },
        )

    @property
    def environment(self) -> str:
        return "Production" if self.is_production else "Test"

    def url(self, resource: str) -> Optional[str]:
        """Endpoint for ``resource`` in the active environment, or None if unset."""
        if resource not in RESOURCES:
            raise ValueError(f"Unknown Odoo resource: {resource}")
        suffix = "" if self.is_production else "_test"
        value = getattr(self.config, f"{resource}_api_url{suffix}")
        return value.rstrip("/") if value else None

    async def request(
        self,
        method: str,
        url: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> OdooResponse:
        """Send one call; transport errors propagate as ``httpx.HTTPError``."""
        resp = await self._http.request(method, url, json=payload)
        text = resp.text
        try:
            data = resp.json()
        except ValueError:
            data = {"raw": text}
        if not isinstance(data, dict):
            data = {"raw": text}
        logger.debug("Odoo %s %s -> %s", method, url, resp.status_code)
        return OdooResponse(status_code=resp.status_code, data=data, text=text)

    async def put(self, url: str, payload: Optional[dict[str, Any]] = None) -> OdooResponse:
        return await self.request("PUT", url, payload)

    async def post(self, url: str, payload: dict[str, Any]) -> OdooResponse:
        return await self.request("POST", url, payload)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> OdooClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
