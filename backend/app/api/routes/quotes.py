"""Quote requests and supplier recommendations."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request, status
from sqlalchemy.orm import selectinload

from app.core.exceptions import service_errors
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireOperator
from app.core.responses import list_response, page_response
from app.db.session import DbSession
from app.models.organization import Organization
from app.models.quote import Quote, QuoteRequest, QuoteRequestStatus
from app.models.supplier import Supplier
from app.schemas.supplier import (
    QuoteRequestAction,
    QuoteRequestCreate,
    ScoreUpdateRequest,
    SupplierScoreResponse,
)
from app.services.audit_service import CREATE, UPDATE, client_ip, log_action
from app.services.quote_service import QuoteService
from app.services.supplier_scoring_service import (
    ScoreMetrics,
    get_supplier_recommendations,
    update_supplier_score,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def quote_request_dict(request: QuoteRequest) -> dict:
    return {
        "id": request.id,
        "request_number": request.request_number,
        "status": request.status.value,
        "due_date": request.due_date.isoformat() if request.due_date else None,
        "notes": request.notes,
        "sent_at": request.sent_at.isoformat() if request.sent_at else None,
        "created_at": request.created_at.isoformat() if request.created_at else None,
        "items": [
            {
                "id": i.id,
                "product_id": i.product_id,
                "description": i.description,
                "quantity": i.quantity,
                "unit": i.unit,
            }
            for i in request.items
        ],
        "quotes": [
            {
                "id": q.id,
                "supplier_id": q.supplier_id,
                "supplier_name": q.supplier.name,
                "quote_number": q.quote_number,
                "total_amount": float(q.total_amount or 0),
                "delivery_days": q.delivery_days,
                "payment_terms": q.payment_terms,
                "discount_percent": float(q.discount_percent or 0),
                "valid_until": q.valid_until.isoformat() if q.valid_until else None,
                "is_selected": q.is_selected,
                "items": [
                    {
                        "quote_request_item_id": qi.quote_request_item_id,
                        "unit_price": float(qi.unit_price),
                        "quantity": qi.quantity,
                        "available": qi.available,
                        "notes": qi.notes,
                    }
                    for qi in q.items
                ],
            }
            for q in request.quotes
        ],
    }


# Declared before /{quote_request_id} so the literal path wins.
@router.get("/recommendations")
@limiter.limit("60/minute")
def list_recommendations(request: Request, db: DbSession, current_user: CurrentUser):
    """Active suppliers ranked by overall score."""
    recommendations = get_supplier_recommendations(db, current_user.organization_id)
    return list_response([
        {
            "supplier": {
                "id": r.supplier.id,
                "code": r.supplier.code,
                "name": r.supplier.name,
                "preferred_contact": r.supplier.preferred_contact,
            },
            "score": SupplierScoreResponse.model_validate(r.score).model_dump() if r.score else None,
            "overall_score": r.overall_score,
            "tier": r.tier,
            "recommendation": r.recommendation,
            "has_purchase_history": r.has_purchase_history,
            "pros": r.pros,
            "cons": r.cons,
        }
        for r in recommendations
    ])


@router.post("/recommendations")
@limiter.limit("30/minute")
def record_supplier_outcome(
    request: Request, body: ScoreUpdateRequest, db: DbSession, current_user: RequireOperator
):
    """Blend one order outcome into the supplier's score."""
    if body.supplier_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="supplier_id es requerido")
    supplier = (
        db.query(Supplier)
        .filter(Supplier.id == body.supplier_id, Supplier.organization_id == current_user.organization_id)
        .first()
    )
    if not supplier:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proveedor no encontrado")

    metrics = ScoreMetrics(**body.model_dump(exclude={"supplier_id"}))
    log_action(
        db, current_user.organization_id, UPDATE, "supplier_score", supplier.id,
        user_id=current_user.user_id, new_values=body.model_dump(exclude_none=True),
        ip_address=client_ip(request),
    )
    score = update_supplier_score(db, supplier.id, metrics)
    return SupplierScoreResponse.model_validate(score).model_dump()


@router.get("/")
@limiter.limit("60/minute")
def list_quote_requests(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    status: Optional[QuoteRequestStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
):
    query = db.query(QuoteRequest).filter(QuoteRequest.organization_id == current_user.organization_id)
    if status is not None:
        query = query.filter(QuoteRequest.status == status)
    total = query.count()
    requests = (
        query.options(
            selectinload(QuoteRequest.items),
            selectinload(QuoteRequest.quotes).selectinload(Quote.items),
            selectinload(QuoteRequest.quotes).selectinload(Quote.supplier),
        )
        .order_by(QuoteRequest.created_at.desc(), QuoteRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return page_response([quote_request_dict(r) for r in requests], total, page, limit)


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_quote_request(
    request: Request, body: QuoteRequestCreate, db: DbSession, current_user: RequireOperator
):
    """Create a quote request; with ``send_now`` dispatch it to the listed suppliers."""
    service = QuoteService(db, current_user.organization_id)
    quote_request = service.create(body, current_user.user_id)

    send_results = []
    if body.send_now and body.supplier_ids:
        organization = db.get(Organization, current_user.organization_id)
        results = await service.dispatch(quote_request, organization.name, body.supplier_ids)
        send_results = [r.to_dict() for r in results]

    log_action(
        db, current_user.organization_id, CREATE, "quote_request", quote_request.id,
        user_id=current_user.user_id,
        new_values={"request_number": quote_request.request_number, "items": len(body.items)},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(quote_request)
    return {**quote_request_dict(quote_request), "send_results": send_results}


@router.put("/{quote_request_id}")
@limiter.limit("30/minute")
def update_quote_request(
    request: Request,
    quote_request_id: int,
    db: DbSession,
    current_user: RequireOperator,
    body: QuoteRequestAction = Body(...),
):
    """register_quote, select_quote or cancel."""
    service = QuoteService(db, current_user.organization_id)
    with service_errors(db):
        quote_request = service.get(quote_request_id)
        old_status = quote_request.status.value
        if body.action == "register_quote":
            if body.quote is None:
                raise ValueError("Se requieren los datos de la cotización")
            service.register_quote(quote_request, body.quote)
        elif body.action == "select_quote":
            if body.quote_id is None:
                raise ValueError("Se requiere quote_id")
            service.select_quote(quote_request, body.quote_id)
        else:
            service.cancel(quote_request)

    log_action(
        db, current_user.organization_id, UPDATE, "quote_request", quote_request.id,
        user_id=current_user.user_id,
        old_values={"status": old_status},
        new_values={"status": quote_request.status.value, "action": body.action},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(quote_request)
    return quote_request_dict(quote_request)
