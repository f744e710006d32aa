# Services module

from app.services.supplier_scoring_service import (
    ScoreMetrics,
    SupplierRecommendation,
    calculate_overall_score,
    get_supplier_recommendations,
    update_supplier_score,
)
from app.services.rotation_service import (
    RotationAlert,
    generate_rotation_alerts,
    molecule_rotation_report,
)

__all__ = [
    "ScoreMetrics",
    "SupplierRecommendation",
    "calculate_overall_score",
    "get_supplier_recommendations",
    "update_supplier_score",
    "RotationAlert",
    "generate_rotation_alerts",
    "molecule_rotation_report",
]
