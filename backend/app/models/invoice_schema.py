from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class LineItemEditRequest(BaseModel):
    """One field write against a line item snapshot."""
    item: Dict[str, Any] = Field(default_factory=dict, description="Current line item record")
    field: str = Field(..., description="e.g., gross_weight, gemstone_cost, weight_mode")
    value: Any = None
    metal_rate_24k: float = Field(0.0, ge=0, description="24K metal rate per gram")


class InvoiceRecordRequest(BaseModel):
    """A full invoice record as stored by the persistence service."""
    record: Dict[str, Any] = Field(default_factory=dict)
    quick_gst_rate: Optional[float] = Field(
        None, ge=0, description="Total GST preset to apply before recomputing"
    )


class VendorBrandingModel(BaseModel):
    name: str = ""
    logo: str = ""
    primary_color: str = ""
    secondary_color: str = ""
    tagline: str = ""
    email: str = ""
    phone: str = ""
    address_parts: List[str] = Field(default_factory=list)


class GenerateInvoiceRequest(InvoiceRecordRequest):
    prior_invoice_number: Optional[str] = None
    prefix: Optional[str] = None
    branding: Optional[VendorBrandingModel] = None


class NextNumberRequest(BaseModel):
    prior_invoice_number: Optional[str] = None
    prefix: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900, le=9999)


class NextNumberResponse(BaseModel):
    invoice_number: str


class ValidationResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
