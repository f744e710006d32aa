"""Operational and regulatory report catalog.

Every report is tabular: a fixed header list plus one dict per row keyed by
those headers. Delivery based reports only count COMPLETED deliveries.
"""

import logging
from collections import OrderedDict, defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import NotFoundError
from app.models.delivery import Delivery
from app.models.inventory import Inventory
from app.models.patient import EPS, Patient
from app.models.pending_item import PendingItem, PendingStatus
from app.models.transfer import Transfer
from app.models.warehouse import Warehouse
from app.services.rips_service import deliveries_in_period, period_bounds

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30
EXPIRY_REPORT_DAYS = 90
EXPIRY_SOON_DAYS = 30
LOW_LOT_QUANTITY = 10
MAX_DELIVERY_ROWS = 10000
MAX_PATIENT_ROWS = 5000
MAX_PRODUCT_ROWS = 1000
EPS_TOP_N = 10
EPS_DETAIL_ROWS = 100

OPEN_PENDING = (PendingStatus.PENDING, PendingStatus.PARTIAL, PendingStatus.NOTIFIED)

HEADERS_1604 = [
    "bodega", "NumeroMovimiento", "entidad", "TIPIDEAFIL", "Identificacion",
    "NombreCompleto", "telefono", "direccion", "municipio", "codigo", "descripcion",
    "Cantidad_sol", "cantidad_entregadas", "fecha", "Fech_Entrega_efectiva",
    "Entrega", "CONTRATO", "costog", "Mipres", "REGIMEN", "FECHA_FORMULA",
    "DISPENSO", "Concentracion", "FormaFarma", "medico",
]
HEADERS_40 = [
    "Entidad", "Acta", "codigo", "descripcionitem", "cantidad",
    "Fecha_Entrega", "hora", "Tipo_contrato", "valorven", "COSTO",
    "Funcionario_Entrega", "Lote", "Bodega_Entrega", "Nombre_Bodega_Entrega",
    "Identificacion", "NombreCompleto", "municipio",
]
HEADERS_PENDIENTES = [
    "bodega", "BODEGA", "codigo", "descripcion", "cantidad",
    "fecha", "pendientes", "tipopen", "AfCodigo", "NombreCompleto", "TELEFONO",
]
HEADERS_CIERRE_DIARIO = [
    "fecha", "bodega", "nombre_bodega", "total_entregas", "total_items",
    "total_unidades", "valor_total", "cuota_moderadora", "pacientes_atendidos",
]
HEADERS_CIERRE_MENSUAL = [
    "año", "mes", "bodega", "nombre_bodega", "total_entregas", "total_items",
    "total_unidades", "valor_total", "promedio_diario", "dias_con_entregas",
]
HEADERS_INVENTARIO = [
    "bodega", "nombre_bodega", "codigo", "producto", "molecula",
    "lote", "fecha_vencimiento", "cantidad", "costo_unitario", "valor_total",
]
HEADERS_VENCIMIENTOS = [
    "bodega", "nombre_bodega", "codigo", "producto", "lote",
    "fecha_vencimiento", "dias_para_vencer", "cantidad", "valor_en_riesgo", "estado",
]
HEADERS_RESUMEN_BODEGA = [
    "codigo_bodega", "nombre_bodega", "tipo", "total_productos", "total_unidades",
    "valor_inventario", "productos_stock_bajo", "productos_por_vencer",
]
HEADERS_ENTREGAS_PACIENTE = [
    "documento", "paciente", "telefono", "ciudad", "total_visitas",
    "total_productos", "valor_total", "ultima_visita",
]
HEADERS_CONSUMO = [
    "codigo", "producto", "molecula", "presentacion", "total_dispensado",
    "total_entregas", "valor_total",
]
HEADERS_TRASLADOS = [
    "numero", "fecha", "bodega_origen", "bodega_destino", "estado",
    "total_items", "observaciones",
]


def round_money(value) -> int:
    """Whole pesos, half up."""
    return int(Decimal(str(value or 0)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def expiry_status(days_left: int) -> str:
    if days_left <= 0:
        return "VENCIDO"
    if days_left <= 30:
        return "CRITICO"
    if days_left <= 60:
        return "ALERTA"
    return "PROXIMO"


def _line_value(item) -> Decimal:
    return Decimal(item.quantity) * (item.unit_cost or Decimal(0))


def _delivery_value(delivery: Delivery) -> Decimal:
    return sum((_line_value(i) for i in delivery.items), Decimal(0))


def _regime(patient: Optional[Patient], eps_id: Optional[int]) -> str:
    if patient is None:
        return ""
    contracts = [c for c in patient.contracts if c.is_active]
    for contract in contracts:
        if contract.eps_id == eps_id:
            return contract.regime
    return contracts[0].regime if contracts else ""


def default_period(
    start: Optional[date], end: Optional[date], today: Optional[date] = None
) -> tuple:
    end = end or today or datetime.now(timezone.utc).date()
    start = start or end - timedelta(days=DEFAULT_PERIOD_DAYS)
    if end < start:
        raise ValueError("La fecha final debe ser posterior a la inicial")
    return start, end


class ReportService:
    """Builds the catalog reports for one organization and period."""

    def __init__(
        self,
        db: Session,
        organization_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        warehouse_id: Optional[int] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.organization_id = organization_id
        self.today = today or datetime.now(timezone.utc).date()
        self.start, self.end = default_period(start, end, self.today)
        self.warehouse_id = warehouse_id

    def _deliveries(self) -> List[Delivery]:
        """Newest first."""
        deliveries = deliveries_in_period(
            self.db, self.organization_id, self.start, self.end, self.warehouse_id
        )
        return list(reversed(deliveries))

    def _lots(self):
        query = (
            self.db.query(Inventory)
            .join(Warehouse, Inventory.warehouse_id == Warehouse.id)
            .options(selectinload(Inventory.product), selectinload(Inventory.warehouse))
            .filter(Warehouse.organization_id == self.organization_id, Inventory.quantity > 0)
        )
        if self.warehouse_id is not None:
            query = query.filter(Inventory.warehouse_id == self.warehouse_id)
        return query

    def report_1604(self) -> List[Dict[str, Any]]:
        """Supersalud dispensation report, one row per delivered line."""
        rows = []
        for d in self._deliveries():
            rx = d.prescription
            patient = rx.patient if rx else None
            eps = rx.eps if rx else None
            delivered_on = d.delivery_date.date().isoformat()
            for item in d.items:
                product = item.product
                rows.append({
                    "bodega": d.warehouse.code if d.warehouse else "",
                    "NumeroMovimiento": str(d.id),
                    "entidad": eps.name if eps else "",
                    "TIPIDEAFIL": (patient.document_type if patient else None) or "CC",
                    "Identificacion": patient.document_number if patient else "",
                    "NombreCompleto": patient.name if patient else "",
                    "telefono": (patient.phone if patient else None) or "",
                    "direccion": (patient.address if patient else None) or "",
                    "municipio": (patient.city if patient else None) or "",
                    "codigo": product.code,
                    "descripcion": product.name,
                    "Cantidad_sol": item.quantity,
                    "cantidad_entregadas": item.quantity,
                    "fecha": delivered_on,
                    "Fech_Entrega_efectiva": delivered_on,
                    "Entrega": "Presencial",
                    "CONTRATO": "EVENTO",
                    "costog": float(item.unit_cost or 0),
                    "Mipres": (rx.mipres_code if rx else None) or "",
                    "REGIMEN": _regime(patient, rx.eps_id if rx else None),
                    "FECHA_FORMULA": rx.prescription_date.date().isoformat() if rx else "",
                    "DISPENSO": (d.delivered_by.name if d.delivered_by else None) or "",
                    "Concentracion": product.concentration or "",
                    "FormaFarma": product.presentation or "",
                    "medico": (rx.prescribing_doctor if rx else None) or "",
                })
        return rows[:MAX_DELIVERY_ROWS]

    def report_40(self) -> List[Dict[str, Any]]:
        """Delivery certificate lines."""
        rows = []
        for d in self._deliveries():
            rx = d.prescription
            patient = rx.patient if rx else None
            for item in d.items:
                rows.append({
                    "Entidad": rx.eps.name if rx and rx.eps else "",
                    "Acta": str(d.id),
                    "codigo": item.product.code,
                    "descripcionitem": item.product.name,
                    "cantidad": item.quantity,
                    "Fecha_Entrega": d.delivery_date.date().isoformat(),
                    "hora": d.delivery_date.strftime("%H:%M:%S"),
                    "Tipo_contrato": "EVENTO",
                    "valorven": float(_line_value(item)),
                    "COSTO": float(item.unit_cost or 0),
                    "Funcionario_Entrega": (d.delivered_by.name if d.delivered_by else None) or "",
                    "Lote": item.lot_number or "",
                    "Bodega_Entrega": d.warehouse.code if d.warehouse else "",
                    "Nombre_Bodega_Entrega": d.warehouse.name if d.warehouse else "",
                    "Identificacion": patient.document_number if patient else "",
                    "NombreCompleto": patient.name if patient else "",
                    "municipio": (patient.city if patient else None) or "",
                })
        return rows[:MAX_DELIVERY_ROWS]

    def report_pendientes(self) -> List[Dict[str, Any]]:
        """Open pending items, regardless of period."""
        query = (
            self.db.query(PendingItem)
            .options(selectinload(PendingItem.product), selectinload(PendingItem.patient))
            .filter(
                PendingItem.organization_id == self.organization_id,
                PendingItem.status.in_(OPEN_PENDING),
            )
        )
        if self.warehouse_id is not None:
            query = query.filter(PendingItem.warehouse_id == self.warehouse_id)
        items = query.order_by(PendingItem.created_at.desc(), PendingItem.id.desc()).all()

        warehouse_ids = {i.warehouse_id for i in items if i.warehouse_id is not None}
        warehouses = {
            w.id: w for w in self.db.query(Warehouse).filter(Warehouse.id.in_(warehouse_ids))
        } if warehouse_ids else {}

        rows = []
        for item in items:
            warehouse = warehouses.get(item.warehouse_id)
            rows.append({
                "bodega": warehouse.code if warehouse else "",
                "BODEGA": warehouse.name if warehouse else "",
                "codigo": item.product.code,
                "descripcion": item.product.name,
                "cantidad": item.pending_qty,
                "fecha": item.created_at.date().isoformat(),
                "pendientes": item.remaining_qty,
                "tipopen": "Pendiente por desabastecimiento",
                "AfCodigo": item.patient.document_number,
                "NombreCompleto": item.patient.name,
                "TELEFONO": item.patient.phone or "",
            })
        return rows

    def _closing_groups(self, key: Callable[[Delivery], tuple]) -> "OrderedDict[tuple, List[Delivery]]":
        groups: "OrderedDict[tuple, List[Delivery]]" = OrderedDict()
        for d in self._deliveries():
            groups.setdefault(key(d), []).append(d)
        return groups

    @staticmethod
    def _closing_totals(deliveries: List[Delivery]) -> Dict[str, Any]:
        return {
            "total_entregas": len(deliveries),
            "total_items": sum(len(d.items) for d in deliveries),
            "total_unidades": sum(i.quantity for d in deliveries for i in d.items),
            "valor_total": round_money(sum((_delivery_value(d) for d in deliveries), Decimal(0))),
        }

    def report_cierre_diario(self) -> List[Dict[str, Any]]:
        """Daily closing per warehouse."""
        groups = self._closing_groups(lambda d: (d.delivery_date.date(), d.warehouse_id))
        rows = []
        for (day, _), deliveries in groups.items():
            warehouse = deliveries[0].warehouse
            row = {"fecha": day.isoformat(), "bodega": warehouse.code, "nombre_bodega": warehouse.name}
            row.update(self._closing_totals(deliveries))
            row["cuota_moderadora"] = round_money(sum((d.moderator_fee or 0 for d in deliveries), Decimal(0)))
            row["pacientes_atendidos"] = len({d.prescription.patient_id for d in deliveries})
            rows.append(row)
        rows.sort(key=lambda r: r["nombre_bodega"])
        rows.sort(key=lambda r: r["fecha"], reverse=True)
        return rows

    def report_cierre_mensual(self) -> List[Dict[str, Any]]:
        """Monthly closing per warehouse."""
        groups = self._closing_groups(
            lambda d: (d.delivery_date.year, d.delivery_date.month, d.warehouse_id)
        )
        rows = []
        for (year, month, _), deliveries in groups.items():
            warehouse = deliveries[0].warehouse
            days = len({d.delivery_date.date() for d in deliveries})
            row = {"año": year, "mes": month, "bodega": warehouse.code, "nombre_bodega": warehouse.name}
            row.update(self._closing_totals(deliveries))
            row["promedio_diario"] = round_money(Decimal(len(deliveries)) / max(days, 1))
            row["dias_con_entregas"] = days
            rows.append(row)
        rows.sort(key=lambda r: r["nombre_bodega"])
        rows.sort(key=lambda r: (r["año"], r["mes"]), reverse=True)
        return rows

    def report_inventario_valorizado(self) -> List[Dict[str, Any]]:
        lots = self._lots().all()
        lots.sort(key=lambda lot: (lot.warehouse.name, lot.product.name))
        return [
            {
                "bodega": lot.warehouse.code,
                "nombre_bodega": lot.warehouse.name,
                "codigo": lot.product.code,
                "producto": lot.product.name,
                "molecula": lot.product.molecule or "",
                "lote": lot.lot_number,
                "fecha_vencimiento": lot.expiry_date.isoformat() if lot.expiry_date else "",
                "cantidad": lot.quantity,
                "costo_unitario": float(lot.unit_cost or 0),
                "valor_total": float(lot.quantity * (lot.unit_cost or 0)),
            }
            for lot in lots
        ]

    def report_vencimientos(self) -> List[Dict[str, Any]]:
        """Lots expiring within 90 days, already expired included. Lots without expiry are left out."""
        horizon = self.today + timedelta(days=EXPIRY_REPORT_DAYS)
        lots = (
            self._lots()
            .filter(Inventory.expiry_date.isnot(None), Inventory.expiry_date <= horizon)
            .order_by(Inventory.expiry_date, Inventory.id)
            .all()
        )
        rows = []
        for lot in lots:
            days_left = (lot.expiry_date - self.today).days
            rows.append({
                "bodega": lot.warehouse.code,
                "nombre_bodega": lot.warehouse.name,
                "codigo": lot.product.code,
                "producto": lot.product.name,
                "lote": lot.lot_number,
                "fecha_vencimiento": lot.expiry_date.isoformat(),
                "dias_para_vencer": days_left,
                "cantidad": lot.quantity,
                "valor_en_riesgo": float(lot.quantity * (lot.unit_cost or 0)),
                "estado": expiry_status(days_left),
            })
        return rows

    def report_resumen_bodega(self) -> List[Dict[str, Any]]:
        """Stock summary per active warehouse; lot counts, not distinct products."""
        query = self.db.query(Warehouse).filter(
            Warehouse.organization_id == self.organization_id, Warehouse.is_active.is_(True)
        )
        if self.warehouse_id is not None:
            query = query.filter(Warehouse.id == self.warehouse_id)
        warehouses = query.all()

        lots_by_warehouse = defaultdict(list)
        for lot in self._lots().all():
            lots_by_warehouse[lot.warehouse_id].append(lot)

        soon = self.today + timedelta(days=EXPIRY_SOON_DAYS)
        rows = []
        for w in warehouses:
            lots = lots_by_warehouse[w.id]
            rows.append({
                "codigo_bodega": w.code,
                "nombre_bodega": w.name,
                "tipo": w.type.value,
                "total_productos": len(lots),
                "total_unidades": sum(lot.quantity for lot in lots),
                "valor_inventario": round_money(
                    sum((lot.quantity * (lot.unit_cost or Decimal(0)) for lot in lots), Decimal(0))
                ),
                "productos_stock_bajo": sum(1 for lot in lots if lot.quantity <= LOW_LOT_QUANTITY),
                "productos_por_vencer": sum(
                    1 for lot in lots if lot.expiry_date is not None and lot.expiry_date <= soon
                ),
            })
        rows.sort(key=lambda r: r["valor_inventario"], reverse=True)
        return rows

    def report_entregas_paciente(self) -> List[Dict[str, Any]]:
        by_patient: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
        for d in self._deliveries():
            patient = d.prescription.patient
            entry = by_patient.get(patient.id)
            if entry is None:
                entry = by_patient[patient.id] = {
                    "documento": patient.document_number,
                    "paciente": patient.name,
                    "telefono": patient.phone or "",
                    "ciudad": patient.city or "",
                    "total_visitas": 0,
                    "total_productos": 0,
                    "valor": Decimal(0),
                    # newest first, so the first delivery seen is the last visit
                    "ultima_visita": d.delivery_date.date().isoformat(),
                }
            entry["total_visitas"] += 1
            entry["total_productos"] += len(d.items)
            entry["valor"] += _delivery_value(d)

        rows = []
        for entry in by_patient.values():
            entry["valor_total"] = round_money(entry.pop("valor"))
            rows.append({h: entry[h] for h in HEADERS_ENTREGAS_PACIENTE})
        rows.sort(key=lambda r: r["total_visitas"], reverse=True)
        return rows[:MAX_PATIENT_ROWS]

    def report_consumo_producto(self) -> List[Dict[str, Any]]:
        by_product: Dict[int, Dict[str, Any]] = {}
        for d in self._deliveries():
            for item in d.items:
                product = item.product
                entry = by_product.setdefault(product.id, {
                    "codigo": product.code,
                    "producto": product.name,
                    "molecula": product.molecule or "",
                    "presentacion": product.presentation or "",
                    "total_dispensado": 0,
                    "total_entregas": 0,
                    "valor": Decimal(0),
                })
                entry["total_dispensado"] += item.quantity
                entry["total_entregas"] += 1
                entry["valor"] += _line_value(item)

        rows = []
        for entry in by_product.values():
            entry["valor_total"] = round_money(entry.pop("valor"))
            rows.append(entry)
        rows.sort(key=lambda r: r["total_dispensado"], reverse=True)
        return rows[:MAX_PRODUCT_ROWS]

    def report_traslados(self) -> List[Dict[str, Any]]:
        start_dt, end_dt = period_bounds(self.start, self.end)
        query = (
            self.db.query(Transfer)
            .options(
                selectinload(Transfer.items),
                selectinload(Transfer.from_warehouse),
                selectinload(Transfer.to_warehouse),
            )
            .filter(
                Transfer.organization_id == self.organization_id,
                Transfer.created_at >= start_dt,
                Transfer.created_at <= end_dt,
            )
        )
        if self.warehouse_id is not None:
            query = query.filter(
                (Transfer.from_warehouse_id == self.warehouse_id)
                | (Transfer.to_warehouse_id == self.warehouse_id)
            )
        return [
            {
                "numero": t.transfer_number,
                "fecha": t.created_at.date().isoformat(),
                "bodega_origen": t.from_warehouse.name,
                "bodega_destino": t.to_warehouse.name,
                "estado": t.status.value,
                "total_items": len(t.items),
                "observaciones": t.notes or "",
            }
            for t in query.order_by(Transfer.created_at.desc(), Transfer.id.desc()).all()
        ]

    def generate(self, report_type: str) -> Dict[str, Any]:
        entry = REPORT_TYPES.get(report_type)
        if entry is None:
            raise ValueError(f"Tipo de reporte no válido: {report_type}")
        title, headers, build = entry
        data = build(self)
        logger.info(
            f"Report {report_type} for organization {self.organization_id}: {len(data)} rows"
        )
        return {
            "type": report_type,
            "title": title,
            "headers": headers,
            "data": data,
            "count": len(data),
            "start_date": self.start.isoformat(),
            "end_date": self.end.isoformat(),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }


REPORT_TYPES: Dict[str, tuple] = {
    "1604": ("Dispensación Supersalud (1604)", HEADERS_1604, ReportService.report_1604),
    "40": ("Entregas (40)", HEADERS_40, ReportService.report_40),
    "pendientes": ("Pendientes", HEADERS_PENDIENTES, ReportService.report_pendientes),
    "cierre_diario": ("Cierre diario por bodega", HEADERS_CIERRE_DIARIO, ReportService.report_cierre_diario),
    "cierre_mensual": ("Cierre mensual por bodega", HEADERS_CIERRE_MENSUAL, ReportService.report_cierre_mensual),
    "inventario_valorizado": (
        "Inventario valorizado", HEADERS_INVENTARIO, ReportService.report_inventario_valorizado
    ),
    "vencimientos": ("Próximos vencimientos", HEADERS_VENCIMIENTOS, ReportService.report_vencimientos),
    "resumen_bodega": ("Resumen por bodega", HEADERS_RESUMEN_BODEGA, ReportService.report_resumen_bodega),
    "entregas_paciente": (
        "Entregas por paciente", HEADERS_ENTREGAS_PACIENTE, ReportService.report_entregas_paciente
    ),
    "consumo_producto": ("Consumo por producto", HEADERS_CONSUMO, ReportService.report_consumo_producto),
    "traslados": ("Traslados", HEADERS_TRASLADOS, ReportService.report_traslados),
}


def _eps_value(delivery: Delivery) -> Decimal:
    """EPS reports value lines at the product's list price."""
    return sum(
        (Decimal(i.quantity) * (i.product.price or Decimal(0)) for i in delivery.items), Decimal(0)
    )


def _eps_totals(deliveries: List[Delivery]) -> Dict[str, Any]:
    return {
        "total_entregas": len(deliveries),
        "total_items": sum(len(d.items) for d in deliveries),
        "total_unidades": sum(i.quantity for d in deliveries for i in d.items),
        "valor_total": float(sum((_eps_value(d) for d in deliveries), Decimal(0))),
        "pacientes_unicos": len({d.prescription.patient_id for d in deliveries}),
    }


def eps_summary(
    db: Session,
    organization_id: int,
    start: date,
    end: date,
    warehouse_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Deliveries, units, value and patients per active EPS."""
    if end < start:
        raise ValueError("La fecha final debe ser posterior a la inicial")
    eps_list = (
        db.query(EPS)
        .filter(EPS.organization_id == organization_id, EPS.is_active.is_(True))
        .order_by(EPS.name)
        .all()
    )
    by_eps = defaultdict(list)
    for d in deliveries_in_period(db, organization_id, start, end, warehouse_id):
        by_eps[d.prescription.eps_id].append(d)

    reports = []
    for eps in eps_list:
        row = {"eps_id": eps.id, "eps_code": eps.code, "eps_name": eps.name}
        row.update(_eps_totals(by_eps.get(eps.id, [])))
        reports.append(row)

    return {
        "periodo_inicio": start.isoformat(),
        "periodo_fin": end.isoformat(),
        "eps_list": [{"id": e.id, "code": e.code, "name": e.name} for e in eps_list],
        "eps_reports": [r for r in reports if r["total_entregas"] > 0],
        "totales": {
            "entregas": sum(r["total_entregas"] for r in reports),
            "items": sum(r["total_items"] for r in reports),
            "unidades": sum(r["total_unidades"] for r in reports),
            "valor": sum(r["valor_total"] for r in reports),
            "pacientes": sum(r["pacientes_unicos"] for r in reports),
        },
    }


def eps_detail(
    db: Session,
    organization_id: int,
    eps_id: int,
    start: date,
    end: date,
    warehouse_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Statistics, top products and patients, daily series and latest deliveries of one EPS."""
    if end < start:
        raise ValueError("La fecha final debe ser posterior a la inicial")
    eps = db.query(EPS).filter(EPS.id == eps_id, EPS.organization_id == organization_id).first()
    if eps is None:
        raise NotFoundError("EPS no encontrada")

    deliveries = [
        d for d in deliveries_in_period(db, organization_id, start, end, warehouse_id)
        if d.prescription.eps_id == eps.id
    ]

    patients: Dict[int, Dict[str, Any]] = {}
    products: Dict[int, Dict[str, Any]] = {}
    per_day: Dict[str, Dict[str, Any]] = {}
    for d in deliveries:
        value = _eps_value(d)
        patient = d.prescription.patient
        p = patients.setdefault(patient.id, {
            "id": patient.id,
            "document_number": patient.document_number,
            "name": patient.name,
            "entregas": 0,
            "valor": 0.0,
        })
        p["entregas"] += 1
        p["valor"] += float(value)

        for item in d.items:
            product = item.product
            entry = products.setdefault(product.id, {
                "id": product.id,
                "code": product.code,
                "name": product.name,
                "cantidad": 0,
                "valor": 0.0,
                "entregas": 0,
            })
            entry["cantidad"] += item.quantity
            entry["valor"] += float(Decimal(item.quantity) * (product.price or Decimal(0)))
            entry["entregas"] += 1

        day = per_day.setdefault(d.delivery_date.date().isoformat(), {"cantidad": 0, "valor": 0.0})
        day["cantidad"] += 1
        day["valor"] += float(value)

    stats = _eps_totals(deliveries)
    stats["productos_unicos"] = len(products)

    latest = list(reversed(deliveries))[:EPS_DETAIL_ROWS]
    return {
        "eps": {"id": eps.id, "code": eps.code, "name": eps.name},
        "estadisticas": stats,
        "top_productos": sorted(products.values(), key=lambda r: r["cantidad"], reverse=True)[:EPS_TOP_N],
        "top_pacientes": sorted(patients.values(), key=lambda r: r["valor"], reverse=True)[:EPS_TOP_N],
        "entregas_por_dia": [{"fecha": day, **totals} for day, totals in sorted(per_day.items())],
        "detalle_entregas": [
            {
                "id": d.id,
                "fecha": d.delivery_date.isoformat(),
                "paciente": d.prescription.patient.name,
                "documento": d.prescription.patient.document_number,
                "bodega": d.warehouse.name if d.warehouse else "",
                "items": len(d.items),
                "unidades": sum(i.quantity for i in d.items),
                "valor": float(_eps_value(d)),
            }
            for d in latest
        ],
    }
