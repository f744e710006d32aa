"""Proforma invoice lines for Siigo bulk import, one invoice per EPS."""

import csv
import io
import re
from collections import OrderedDict
from datetime import date, datetime
from typing import Dict, List, Optional

from app.models.delivery import Delivery

NO_EPS = "SIN_EPS"
DEFAULT_TERCERO = "900000000"
DEFAULT_BODEGA = "PRINCIPAL"

CSV_HEADERS = [
    "Tipo Comprobante", "Consecutivo", "Fecha Elaboracion", "Identificacion Tercero",
    "Nombre Tercero", "Sucursal", "Codigo Producto", "Descripcion Producto", "Bodega",
    "Cantidad", "Valor Unitario", "Valor Descuento", "Valor Base", "Porcentaje IVA",
    "Valor IVA", "Valor Total", "Centro Costo", "Observacion",
]


def group_by_eps(deliveries: List[Delivery]) -> "OrderedDict[str, List[Delivery]]":
    groups: "OrderedDict[str, List[Delivery]]" = OrderedDict()
    for delivery in deliveries:
        eps = delivery.prescription.eps if delivery.prescription else None
        groups.setdefault(eps.name if eps else NO_EPS, []).append(delivery)
    return groups


def first_consecutive(start: date) -> int:
    """Invoice numbering starts at the last four digits of the start date (MMDD)."""
    return int(re.sub(r"\D", "", start.isoformat())[-4:])


def format_date(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


def build_lines(groups: Dict[str, List[Delivery]], start: date) -> List[dict]:
    """One FV line per delivered item; each EPS group gets the next consecutive."""
    lines: List[dict] = []
    consecutive = first_consecutive(start)
    for eps_name, deliveries in groups.items():
        eps = deliveries[0].prescription.eps if deliveries[0].prescription else None
        tercero = eps.code if eps and eps.code else DEFAULT_TERCERO
        for delivery in deliveries:
            patient = delivery.prescription.patient if delivery.prescription else None
            for item in delivery.items:
                product = item.product
                unit_value = float(item.unit_cost or 0) or float(product.price if product else 0)
                base = round(item.quantity * unit_value, 2)
                lines.append({
                    "tipo_comprobante": "FV",
                    "consecutivo": consecutive,
                    "fecha_elaboracion": format_date(delivery.delivery_date),
                    "identificacion_tercero": tercero,
                    "nombre_tercero": eps_name,
                    "sucursal": 1,
                    "codigo_producto": product.code if product else "",
                    "descripcion_producto": product.name if product else "",
                    "bodega": delivery.warehouse.code if delivery.warehouse else DEFAULT_BODEGA,
                    "cantidad": item.quantity,
                    "valor_unitario": unit_value,
                    "valor_descuento": 0.0,
                    "valor_base": base,
                    "porcentaje_iva": 0,
                    "valor_iva": 0.0,
                    "valor_total": base,
                    "centro_costo": "",
                    "observacion": f"Entrega {delivery.id} - {patient.name if patient else ''}",
                })
        consecutive += 1
    return lines


def summarize_groups(groups: Dict[str, List[Delivery]]) -> List[dict]:
    return [
        {
            "eps": eps_name,
            "entregas": len(deliveries),
            "items": sum(len(d.items) for d in deliveries),
        }
        for eps_name, deliveries in groups.items()
    ]


def render_csv(lines: List[dict]) -> bytes:
    """CSV with UTF-8 BOM so spreadsheet tools detect the encoding."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    for line in lines:
        writer.writerow([
            line["tipo_comprobante"],
            line["consecutivo"],
            line["fecha_elaboracion"],
            line["identificacion_tercero"],
            line["nombre_tercero"],
            line["sucursal"],
            line["codigo_producto"],
            line["descripcion_producto"],
            line["bodega"],
            line["cantidad"],
            f"{line['valor_unitario']:.2f}",
            f"{line['valor_descuento']:.2f}",
            f"{line['valor_base']:.2f}",
            line["porcentaje_iva"],
            f"{line['valor_iva']:.2f}",
            f"{line['valor_total']:.2f}",
            line["centro_costo"],
            line["observacion"],
        ])
    return b"\xef\xbb\xbf" + output.getvalue().encode("utf-8")


def filter_by_eps(deliveries: List[Delivery], eps_id: Optional[int]) -> List[Delivery]:
    if eps_id is None:
        return deliveries
    return [d for d in deliveries if d.prescription and d.prescription.eps_id == eps_id]
