"""Supplier scoring engine.

Each supplier carries six 0-100 sub-scores. Every recorded transaction
blends the old value with the new signal (70% history, 30% new) and the
overall score is the fixed weighted sum of the six axes.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from sqlalchemy.orm import Session, selectinload

from app.models.purchase import PurchaseOrder
from app.models.supplier import Supplier, SupplierScore

logger = logging.getLogger(__name__)

# Weights per axis, summing to 100
SCORE_WEIGHTS: Dict[str, int] = {
    "price": 30,
    "delivery": 25,
    "quality": 20,
    "payment": 10,
    "discount": 10,
    "tracking": 5,
}

DEFAULT_SCORE = 50
UPDATE_FACTOR = 0.3
STRENGTH_THRESHOLD = 70
WEAKNESS_THRESHOLD = 40

# (minimum overall score, tier, summary), checked top-down
RECOMMENDATION_TIERS = [
    (80, "Altamente recomendado", "Excelente historial"),
    (60, "Recomendado", "Buen desempeño general"),
    (40, "Aceptable", "Considerar alternativas"),
    (0, "No recomendado", "Historial deficiente"),
]
NO_HISTORY_SUFFIX = " (Sin historial de compras)"

PROS = {
    "price": "Precios competitivos",
    "delivery": "Entregas puntuales",
    "quality": "Alta calidad",
    "payment": "Flexibilidad de pago",
    "discount": "Buenos descuentos",
    "tracking": "Excelente comunicación",
}
# Payment and discount have no weakness label
CONS = {
    "price": "Precios altos",
    "delivery": "Problemas de entrega",
    "quality": "Calidad inconsistente",
    "tracking": "Falta de seguimiento",
}


def round_half_up(value: float) -> int:
    """Round .5 upwards; the builtin round() would send 62.5 to 62."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def calculate_overall_score(scores: Mapping[str, float]) -> int:
    """Weighted sum of the six axes keyed by SCORE_WEIGHTS names. Missing axes count as 0."""
    total = sum((scores.get(axis) or 0) * weight / 100 for axis, weight in SCORE_WEIGHTS.items())
    return round_half_up(total)


def blend(old: int, signal: float) -> int:
    return round_half_up(old * (1 - UPDATE_FACTOR) + clamp_score(signal) * UPDATE_FACTOR)


def discount_signal(discount_percent: float) -> float:
    """0% maps to 0 and 10% or more to 100."""
    return clamp_score(discount_percent * 10)


def score_axes(score: SupplierScore) -> Dict[str, int]:
    return {
        "price": score.price_score,
        "delivery": score.delivery_score,
        "quality": score.quality_score,
        "payment": score.payment_score,
        "discount": score.discount_score,
        "tracking": score.tracking_score,
    }


@dataclass
class ScoreMetrics:
    """Outcome of one order or quote. None means the axis was not observed."""

    price_competitive: Optional[bool] = None
    delivered_on_time: Optional[bool] = None
    quality_ok: Optional[bool] = None
    payment_flexible: Optional[bool] = None
    discount_percent: Optional[float] = None
    communication_good: Optional[bool] = None

    def signals(self) -> Dict[str, float]:
        """Map each observed metric to its 0-100 signal on the matching axis."""
        out: Dict[str, float] = {}
        booleans = {
            "price": self.price_competitive,
            "delivery": self.delivered_on_time,
            "quality": self.quality_ok,
            "payment": self.payment_flexible,
            "tracking": self.communication_good,
        }
        for axis, flag in booleans.items():
            if flag is not None:
                out[axis] = 100.0 if flag else 0.0
        if self.discount_percent is not None:
            out["discount"] = discount_signal(self.discount_percent)
        return out


@dataclass
class SupplierRecommendation:
    supplier: Supplier
    score: Optional[SupplierScore]
    overall_score: int
    tier: str
    recommendation: str
    has_purchase_history: bool
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)


def new_score(supplier_id: int) -> SupplierScore:
    return SupplierScore(
        supplier_id=supplier_id,
        price_score=DEFAULT_SCORE,
        delivery_score=DEFAULT_SCORE,
        quality_score=DEFAULT_SCORE,
        payment_score=DEFAULT_SCORE,
        discount_score=DEFAULT_SCORE,
        tracking_score=DEFAULT_SCORE,
        overall_score=DEFAULT_SCORE,
        total_orders=0,
        on_time_deliveries=0,
    )


def get_or_create_score(db: Session, supplier_id: int) -> SupplierScore:
    score = db.query(SupplierScore).filter(SupplierScore.supplier_id == supplier_id).first()
    if score is None:
        score = new_score(supplier_id)
        db.add(score)
        db.flush()
    return score


def apply_metrics(score: SupplierScore, metrics: ScoreMetrics) -> SupplierScore:
    """Blend one observation into ``score`` in place.

    Every call counts as one order; unobserved axes keep their value.
    """
    axes = score_axes(score)
    for axis, signal in metrics.signals().items():
        axes[axis] = blend(axes[axis], signal)

    score.price_score = axes["price"]
    score.delivery_score = axes["delivery"]
    score.quality_score = axes["quality"]
    score.payment_score = axes["payment"]
    score.discount_score = axes["discount"]
    score.tracking_score = axes["tracking"]
    score.total_orders += 1
    if metrics.delivered_on_time:
        score.on_time_deliveries += 1
    score.overall_score = calculate_overall_score(axes)
    return score


def update_supplier_score(db: Session, supplier_id: int, metrics: ScoreMetrics) -> SupplierScore:
    """Load (or lazily create) the supplier's score, apply one observation and commit.

    The read-modify-write is not guarded; two concurrent updates on the same
    supplier can lose one of them.
    """
    score = get_or_create_score(db, supplier_id)
    apply_metrics(score, metrics)
    db.commit()
    db.refresh(score)
    logger.info(
        f"Supplier {supplier_id} score updated: overall={score.overall_score} "
        f"orders={score.total_orders}"
    )
    return score


def recommendation_tier(overall_score: float) -> tuple:
    for minimum, tier, summary in RECOMMENDATION_TIERS:
        if overall_score >= minimum:
            return tier, summary
    return RECOMMENDATION_TIERS[-1][1], RECOMMENDATION_TIERS[-1][2]


def strengths_and_weaknesses(score: Optional[SupplierScore]) -> tuple:
    pros: List[str] = []
    cons: List[str] = []
    if score is None:
        return pros, cons
    for axis, value in score_axes(score).items():
        if value >= STRENGTH_THRESHOLD:
            pros.append(PROS[axis])
        elif value < WEAKNESS_THRESHOLD and axis in CONS:
            cons.append(CONS[axis])
    return pros, cons


def build_recommendation(supplier: Supplier, has_purchase_history: bool) -> SupplierRecommendation:
    score = supplier.score
    overall = score.overall_score if score is not None else DEFAULT_SCORE
    tier, summary = recommendation_tier(overall)
    text = f"{tier} - {summary}"
    if not has_purchase_history:
        text += NO_HISTORY_SUFFIX
    pros, cons = strengths_and_weaknesses(score)
    return SupplierRecommendation(
        supplier=supplier,
        score=score,
        overall_score=overall,
        tier=tier,
        recommendation=text,
        has_purchase_history=has_purchase_history,
        pros=pros,
        cons=cons,
    )


def get_supplier_recommendations(db: Session, organization_id: int) -> List[SupplierRecommendation]:
    """Rank the organization's active suppliers by overall score, best first."""
    suppliers = (
        db.query(Supplier)
        .options(selectinload(Supplier.score))
        .filter(Supplier.organization_id == organization_id, Supplier.is_active.is_(True))
        .order_by(Supplier.name)
        .all()
    )
    with_orders = {
        supplier_id
        for (supplier_id,) in db.query(PurchaseOrder.supplier_id)
        .filter(PurchaseOrder.organization_id == organization_id)
        .distinct()
    }
    recommendations = [build_recommendation(s, s.id in with_orders) for s in suppliers]
    recommendations.sort(key=lambda r: r.overall_score, reverse=True)
    return recommendations
