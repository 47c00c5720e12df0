"""
Pricing API Routes — stateless compute endpoints

POST /api/pricing/line-items                 — blank line item
POST /api/pricing/line-items/edit            — apply one field edit, return recomputed item
POST /api/pricing/invoices/recompute         — recompute every derived value of an invoice record
POST /api/pricing/invoices/validate          — generate-time validation messages
POST /api/pricing/invoices/generate          — fill defaults, validate, return render payload
POST /api/pricing/invoices/next-number       — suggest the next sequential invoice number
GET  /api/pricing/gst-presets                — quick GST rates and karat options

Every request carries its full snapshot; nothing is stored between calls.
"""
import logging

from fastapi import APIRouter, HTTPException

from app.config import GST_RATE_PRESETS, INVOICE_TEMPLATES, KARAT_OPTIONS
from app.models.invoice_schema import (
    GenerateInvoiceRequest,
    InvoiceRecordRequest,
    LineItemEditRequest,
    NextNumberRequest,
    NextNumberResponse,
    ValidationResponse,
)
from app.services.invoice_engine import InvoiceAggregate, apply_quick_gst_rate
from app.services.invoice_numbering import next_invoice_number
from app.services.invoice_service import (
    InvoiceValidationError,
    VendorBranding,
    build_render_payload,
    build_vendor_address,
    from_record,
    prepare_for_generate,
    to_record,
    validate_for_generate,
)
from app.services.line_item_engine import (
    UnknownFieldError,
    apply_field_edit,
    line_item_from_dict,
    line_item_to_dict,
    new_line_item,
)

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])
logger = logging.getLogger("ratna-api.pricing-routes")


def _load(req: InvoiceRecordRequest) -> InvoiceAggregate:
    invoice = from_record(req.record)
    if req.quick_gst_rate is not None:
        invoice = invoice.with_tax(apply_quick_gst_rate(invoice.tax, req.quick_gst_rate))
    return invoice


@router.post("/line-items")
async def create_line_item():
    return line_item_to_dict(new_line_item())


@router.post("/line-items/edit")
async def edit_line_item(req: LineItemEditRequest):
    item = line_item_from_dict(req.item, req.metal_rate_24k)
    try:
        updated = apply_field_edit(item, req.field, req.value, req.metal_rate_24k)
    except UnknownFieldError as e:
        logger.info(f"Rejected edit on {item.id}: {e}")
        raise HTTPException(status_code=422, detail=str(e.args[0]))
    return line_item_to_dict(updated)


@router.post("/invoices/recompute")
async def recompute_invoice(req: InvoiceRecordRequest):
    return to_record(_load(req))


@router.post("/invoices/validate", response_model=ValidationResponse)
async def validate_invoice(req: InvoiceRecordRequest):
    errors = validate_for_generate(_load(req))
    return ValidationResponse(valid=not errors, errors=errors)


@router.post("/invoices/generate")
async def generate_invoice(req: GenerateInvoiceRequest):
    """Fill number / date / due date, validate and return the render payload."""
    try:
        invoice = prepare_for_generate(
            _load(req),
            prior_invoice_number=req.prior_invoice_number,
            prefix=req.prefix,
        )
    except InvoiceValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors)

    branding = None
    if req.branding is not None:
        fields = req.branding.model_dump(exclude={"address_parts"})
        branding = VendorBranding(**fields, address=build_vendor_address(*req.branding.address_parts))

    logger.info(
        "invoice generated",
        extra={"invoice_number": invoice.invoice_number},
    )
    return build_render_payload(invoice, branding)


@router.post("/invoices/next-number", response_model=NextNumberResponse)
async def suggest_invoice_number(req: NextNumberRequest):
    number = next_invoice_number(req.prior_invoice_number, prefix=req.prefix, year=req.year)
    return NextNumberResponse(invoice_number=number)


@router.get("/gst-presets")
async def gst_presets():
    return {
        "gst_rates": list(GST_RATE_PRESETS),
        "karat_options": KARAT_OPTIONS,
        "templates": list(INVOICE_TEMPLATES),
    }
