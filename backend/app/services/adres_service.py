"""Client for the ADRES affiliation lookup service."""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import httpx

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = {"CC", "TI", "CE", "PA", "RC", "NU", "AS", "MS", "CD", "CN", "SC", "PE", "PT"}


@dataclass
class Affiliation:
    afiliado: bool
    estado: str
    entidad: Optional[str] = None
    regimen: Optional[str] = None
    tipo_afiliado: Optional[str] = None
    nombre_completo: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


NOT_FOUND = Affiliation(afiliado=False, estado="NO_ENCONTRADO")


class ADRESClient:
    """Async ADRES client; ``transport`` lets tests plug in an ``httpx.MockTransport``."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = 3,
    ):
        self._config = config or settings
        self._transport = transport
        self._max_retries = max_retries

    @property
    def is_configured(self) -> bool:
        return bool(self._config.adres_api_url)

    async def query(self, document_type: str, document_number: str) -> Dict[str, Any]:
        """Raw lookup. Raises httpx.HTTPError on transport or HTTP failures."""
        async with httpx.AsyncClient(
            base_url=self._config.adres_api_url or "",
            timeout=self._config.http_timeout_seconds,
            transport=self._transport,
        ) as client:
            response = await client.post(
                "/api/auto/query-with-retry",
                params={"max_retries": self._max_retries},
                json={"tipo_documento": document_type, "numero_documento": document_number},
            )
            response.raise_for_status()
            return response.json()

    async def verify_affiliation(self, document_type: str, document_number: str) -> Affiliation:
        """Return the active affiliation, else the most recent one, else NO_ENCONTRADO.

        An unconfigured or failing service is reported as not found.
        """
        if not self.is_configured:
            logger.warning("ADRES lookup skipped: ADRES_API_URL not configured")
            return NOT_FOUND
        try:
            data = await self.query(document_type, document_number)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"ADRES lookup failed for {document_type} {document_number}: {e}")
            return NOT_FOUND

        structured = (data.get("data") or {}).get("structured_data") if data.get("success") else None
        if not structured:
            return NOT_FOUND

        info = structured.get("basic_info") or {}
        affiliations = structured.get("affiliation_data") or []
        full_name = " ".join(
            part for part in (info.get("nombres"), info.get("apellidos")) if part
        ) or None

        active = next(
            (a for a in affiliations if (a.get("estado") or "").upper() == "ACTIVO"), None
        )
        if active:
            return Affiliation(
                afiliado=True,
                estado="ACTIVO",
                entidad=active.get("entidad"),
                regimen=active.get("regimen"),
                tipo_afiliado=active.get("tipo_afiliado"),
                nombre_completo=full_name,
            )

        latest = affiliations[0] if affiliations else {}
        return Affiliation(
            afiliado=False,
            estado=latest.get("estado") or "INACTIVO",
            entidad=latest.get("entidad"),
            regimen=latest.get("regimen"),
            tipo_afiliado=latest.get("tipo_afiliado"),
            nombre_completo=full_name,
        )


def get_adres_client() -> ADRESClient:
    return ADRESClient()
