"""INVIMA CUM catalog: CSV import, search and statistics."""

import csv
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.invima import InvimaDrug

logger = logging.getLogger(__name__)

BATCH_SIZE = 500
MIN_QUERY_LENGTH = 2
MAX_PAGE_SIZE = 100
NO_DATE = "01/01/3000"

# CUM open-data column -> InvimaDrug attribute
TEXT_COLUMNS = {
    "expediente": "file_number",
    "titular": "holder",
    "registrosanitario": "sanitary_registration",
    "estadoregistro": "registration_status",
    "descripcioncomercial": "commercial_description",
    "estadocum": "cum_status",
    "atc": "atc",
    "descripcionatc": "atc_description",
    "viaadministracion": "route",
    "principioactivo": "active_ingredient",
    "concentracion": "concentration",
    "unidadmedida": "unit_of_measure",
    "cantidad": "quantity",
    "formafarmaceutica": "dosage_form",
    "nombrerol": "role_name",
}
DATE_COLUMNS = {
    "fechaexpedicion": "issued_on",
    "fechavencimiento": "expires_on",
    "fechaactivo": "active_since",
    "fechainactivo": "inactive_since",
}


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0


def parse_cum_date(value: Optional[str]) -> Optional[date]:
    """MM/DD/YYYY as published by INVIMA. Blank, placeholder or out-of-range values give None."""
    if not value or value.strip() == NO_DATE:
        return None
    parts = value.strip().split("/")
    if len(parts) != 3:
        return None
    try:
        month, day, year = (int(p) for p in parts)
        if not 1900 <= year <= 2100:
            return None
        return date(year, month, day)
    except ValueError:
        return None


def row_to_fields(row: Dict[str, str]) -> Optional[Dict[str, Any]]:
    """Map one CSV row (lowercase headers) to model fields, or None when it has no expediente."""
    data = {(k or "").strip().lower(): (v or "").strip() for k, v in row.items()}
    file_number = data.get("expedientecum") or data.get("expediente")
    if not file_number:
        return None

    fields: Dict[str, Any] = {
        "cum": f"{file_number}-{data.get('consecutivocum') or '1'}",
        "product_name": data.get("producto") or "Sin nombre",
        "medical_sample": data.get("muestramedica", "").lower() == "si",
    }
    for column, attr in TEXT_COLUMNS.items():
        fields[attr] = data.get(column) or None
    for column, attr in DATE_COLUMNS.items():
        fields[attr] = parse_cum_date(data.get(column))
    return fields


def _flush_batch(db: Session, batch: Dict[str, Dict[str, Any]]) -> None:
    existing = {
        drug.cum: drug
        for drug in db.query(InvimaDrug).filter(InvimaDrug.cum.in_(list(batch)))
    }
    for cum, fields in batch.items():
        drug = existing.get(cum)
        if drug is None:
            db.add(InvimaDrug(**fields))
        else:
            for attr, value in fields.items():
                setattr(drug, attr, value)
    db.commit()


def import_invima_csv(
    db: Session, lines: Iterable[str], clear: bool = False, batch_size: int = BATCH_SIZE
) -> ImportResult:
    """Upsert the CUM CSV by ``cum``, committing every ``batch_size`` rows."""
    if clear:
        deleted = db.query(InvimaDrug).delete()
        db.commit()
        logger.info(f"Cleared {deleted} INVIMA drugs")

    result = ImportResult()
    batch: Dict[str, Dict[str, Any]] = {}
    for row in csv.DictReader(lines):
        fields = row_to_fields(row)
        if fields is None:
            result.skipped += 1
            continue
        batch[fields["cum"]] = fields
        if len(batch) >= batch_size:
            _flush_batch(db, batch)
            result.imported += len(batch)
            batch = {}
            logger.info(f"INVIMA import: {result.imported} rows")
    if batch:
        _flush_batch(db, batch)
        result.imported += len(batch)

    logger.info(f"INVIMA import finished: {result.imported} imported, {result.skipped} skipped")
    return result


def search_drugs(
    db: Session,
    q: Optional[str] = None,
    cum_status: Optional[str] = None,
    route: Optional[str] = None,
    atc: Optional[str] = None,
    dosage_form: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[InvimaDrug], int]:
    query = db.query(InvimaDrug)
    if q and len(q.strip()) >= MIN_QUERY_LENGTH:
        pattern = f"%{q.strip()}%"
        query = query.filter(
            or_(
                InvimaDrug.product_name.ilike(pattern),
                InvimaDrug.active_ingredient.ilike(pattern),
                InvimaDrug.atc.ilike(pattern),
                InvimaDrug.atc_description.ilike(pattern),
                InvimaDrug.cum.ilike(pattern),
            )
        )
    if cum_status:
        query = query.filter(InvimaDrug.cum_status == cum_status)
    if route:
        query = query.filter(InvimaDrug.route.ilike(f"%{route}%"))
    if atc:
        query = query.filter(InvimaDrug.atc.ilike(f"{atc}%"))
    if dosage_form:
        query = query.filter(InvimaDrug.dosage_form.ilike(f"%{dosage_form}%"))

    total = query.count()
    drugs = (
        query.order_by(InvimaDrug.cum_status, InvimaDrug.product_name)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return drugs, total


def _top(db: Session, column, size: int) -> List[Tuple[str, int]]:
    count = func.count(InvimaDrug.id)
    return (
        db.query(column, count)
        .filter(column.isnot(None))
        .group_by(column)
        .order_by(count.desc(), column)
        .limit(size)
        .all()
    )


def catalog_stats(db: Session) -> Dict[str, Any]:
    by_status = dict(
        db.query(InvimaDrug.cum_status, func.count(InvimaDrug.id)).group_by(InvimaDrug.cum_status).all()
    )
    return {
        "summary": {
            "total": sum(by_status.values()),
            "activos": by_status.get("Activo", 0),
            "inactivos": by_status.get("Inactivo", 0),
        },
        "via_administracion": [{"via": v, "count": c} for v, c in _top(db, InvimaDrug.route, 10)],
        "formas_farmaceuticas": [{"forma": f, "count": c} for f, c in _top(db, InvimaDrug.dosage_form, 10)],
        "top_atc": [{"atc": a, "count": c} for a, c in _top(db, InvimaDrug.atc, 20)],
    }
