"""
Modelos Pydantic para los cuerpos de petición y respuestas de la API.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TrackingRefreshRequest(BaseModel):
    """Cuerpo de POST /tracking/single."""

    model_config = ConfigDict(populate_by_name=True)

    tracking_number: str = Field(..., alias="trackingNumber", description="Número de rastreo UPS")

    @field_validator("tracking_number")
    @classmethod
    def validate_tracking_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("trackingNumber must not be blank")
        return v


class ScanLogRequest(BaseModel):
    """Cuerpo de POST /scan-logs."""

    model_config = ConfigDict(populate_by_name=True)

    tracking_id: str = Field(..., alias="trackingId", description="Número escaneado en bodega")
    date_str: Optional[str] = Field(default=None, alias="dateStr", description="Fecha mostrada del escaneo")

    @field_validator("tracking_id")
    @classmethod
    def validate_tracking_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("trackingId must not be blank")
        return v


class SyncResponse(BaseModel):
    """Resultado de una sincronización manual."""

    success: bool
    count: int = 0
    error: Optional[str] = None
