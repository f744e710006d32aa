"""MUV submission schema."""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class MUVSubmission(BaseModel):
    rips_json: Dict[str, Any]
    fev_xml: Optional[str] = None
    validar_solo: bool = False
