"""Quote requests to suppliers and the quotes they send back."""

import logging
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvalidTransitionError, NotFoundError
from app.db.base import utcnow
from app.models.quote import Quote, QuoteItem, QuoteRequest, QuoteRequestItem, QuoteRequestStatus
from app.models.supplier import Supplier
from app.schemas.supplier import QuoteIn, QuoteRequestCreate
from app.services.numbering import next_number

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    supplier_id: int
    success: bool
    method: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _fmt(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def generate_quote_request_message(
    organization_name: str,
    items: List[QuoteRequestItem],
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> str:
    today = today or utcnow().date()
    lines = [
        "**SOLICITUD DE COTIZACIÓN**",
        "",
        f"De: {organization_name}",
        f"Fecha: {_fmt(today)}",
    ]
    if due_date:
        lines.append(f"Fecha límite de respuesta: {_fmt(due_date)}")
    lines += ["", "**PRODUCTOS SOLICITADOS:**", ""]
    for index, item in enumerate(items, start=1):
        lines.append(f"{index}. {item.description}")
        lines.append(f"   Cantidad: {item.quantity} {item.unit}")
        lines.append("")
    lines += [
        "**INFORMACIÓN REQUERIDA:**",
        "- Precio unitario",
        "- Disponibilidad",
        "- Tiempo de entrega",
        "- Condiciones de pago",
        "- Descuentos aplicables",
    ]
    if notes:
        lines += ["", "**NOTAS:**", notes]
    lines += ["", "---", "Por favor responda a este mensaje con su cotización."]
    return "\n".join(lines)


async def send_quote_request(
    supplier: Supplier,
    message: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SendResult:
    """Dispatch ``message`` through the supplier's preferred channel.

    Email and WhatsApp only record the attempt; no gateway is wired in.
    """
    method = supplier.preferred_contact or "email"

    if method == "email":
        if not supplier.email:
            return SendResult(supplier.id, False, method, "Proveedor sin email configurado")
        logger.info(f"Quote request queued by email to {supplier.email}")
        return SendResult(supplier.id, True, method)

    if method == "whatsapp":
        if not supplier.whatsapp:
            return SendResult(supplier.id, False, method, "Proveedor sin WhatsApp configurado")
        logger.info(f"Quote request queued by WhatsApp to {supplier.whatsapp}")
        return SendResult(supplier.id, True, method)

    if method == "api":
        if not supplier.api_endpoint:
            return SendResult(supplier.id, False, method, "Proveedor sin API configurada")
        try:
            async with httpx.AsyncClient(
                transport=transport, timeout=settings.http_timeout_seconds
            ) as client:
                response = await client.post(supplier.api_endpoint, json={"message": message})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Quote request to {supplier.api_endpoint} failed: {e}")
            return SendResult(supplier.id, False, method, str(e))
        return SendResult(supplier.id, True, method)

    return SendResult(supplier.id, False, method, "Método de contacto no soportado")


class QuoteService:
    def __init__(self, db: Session, organization_id: int):
        self.db = db
        self.organization_id = organization_id

    def get(self, quote_request_id: int) -> QuoteRequest:
        request = (
            self.db.query(QuoteRequest)
            .filter(
                QuoteRequest.id == quote_request_id,
                QuoteRequest.organization_id == self.organization_id,
            )
            .first()
        )
        if not request:
            raise NotFoundError("Solicitud de cotización no encontrada")
        return request

    def _supplier(self, supplier_id: int) -> Supplier:
        supplier = (
            self.db.query(Supplier)
            .filter(Supplier.id == supplier_id, Supplier.organization_id == self.organization_id)
            .first()
        )
        if not supplier:
            raise NotFoundError(f"Proveedor {supplier_id} no encontrado")
        return supplier

    def create(self, data: QuoteRequestCreate, user_id: Optional[int] = None) -> QuoteRequest:
        request = QuoteRequest(
            organization_id=self.organization_id,
            request_number=next_number(self.db, QuoteRequest, self.organization_id, "COT", width=5),
            status=QuoteRequestStatus.PENDING,
            due_date=data.due_date,
            notes=data.notes,
            created_by_id=user_id,
        )
        for item in data.items:
            request.items.append(
                QuoteRequestItem(
                    product_id=item.product_id,
                    description=item.description,
                    quantity=item.quantity,
                    unit=item.unit,
                )
            )
        self.db.add(request)
        self.db.flush()
        logger.info(f"Quote request {request.request_number} created with {len(request.items)} items")
        return request

    async def dispatch(
        self,
        request: QuoteRequest,
        organization_name: str,
        supplier_ids: List[int],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> List[SendResult]:
        """Send the request to each supplier; SENT once any send succeeds."""
        message = generate_quote_request_message(
            organization_name, request.items, request.due_date, request.notes
        )
        results = []
        for supplier_id in supplier_ids:
            supplier = (
                self.db.query(Supplier)
                .filter(Supplier.id == supplier_id, Supplier.organization_id == self.organization_id)
                .first()
            )
            if supplier is None:
                results.append(SendResult(supplier_id, False, "email", "Proveedor no encontrado"))
                continue
            results.append(await send_quote_request(supplier, message, transport))

        if any(r.success for r in results):
            request.status = QuoteRequestStatus.SENT
            request.sent_at = utcnow()
            self.db.flush()
        return results

    def register_quote(self, request: QuoteRequest, data: QuoteIn) -> Quote:
        if request.status in (QuoteRequestStatus.COMPLETED, QuoteRequestStatus.CANCELLED):
            raise InvalidTransitionError("La solicitud de cotización ya está cerrada")
        self._supplier(data.supplier_id)

        quote = Quote(
            quote_request_id=request.id,
            supplier_id=data.supplier_id,
            quote_number=data.quote_number,
            delivery_days=data.delivery_days,
            payment_terms=data.payment_terms,
            discount_percent=Decimal(str(data.discount_percent)),
            valid_until=data.valid_until,
            notes=data.notes,
        )
        total = Decimal("0")
        for item in data.items:
            unit_price = Decimal(str(item.unit_price))
            total += unit_price * item.quantity
            quote.items.append(
                QuoteItem(
                    quote_request_item_id=item.quote_request_item_id,
                    unit_price=unit_price,
                    quantity=item.quantity,
                    available=item.available,
                    notes=item.notes,
                )
            )
        quote.total_amount = total
        request.quotes.append(quote)
        request.status = QuoteRequestStatus.PARTIAL
        self.db.flush()
        logger.info(f"Quote from supplier {data.supplier_id} registered on {request.request_number}")
        return quote

    def select_quote(self, request: QuoteRequest, quote_id: int) -> Quote:
        if request.status == QuoteRequestStatus.CANCELLED:
            raise InvalidTransitionError("La solicitud de cotización está cancelada")
        selected = next((q for q in request.quotes if q.id == quote_id), None)
        if selected is None:
            raise NotFoundError("Cotización no encontrada")
        for quote in request.quotes:
            quote.is_selected = quote.id == quote_id
        request.status = QuoteRequestStatus.COMPLETED
        self.db.flush()
        return selected

    def cancel(self, request: QuoteRequest) -> None:
        if request.status == QuoteRequestStatus.COMPLETED:
            raise InvalidTransitionError("No se puede cancelar una solicitud completada")
        request.status = QuoteRequestStatus.CANCELLED
        self.db.flush()
