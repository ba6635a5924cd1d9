from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.stockledger.core.error_catalog import ErrorCatalog
from app.stockledger.db.models import VOUCHER_INCOMING, VOUCHER_SALE, VOUCHER_TRANSFER
from app.stockledger.db.session import get_db
from app.stockledger.schemas.errors import ApiErrorResponse, ApiValidationErrorResponse
from app.stockledger.schemas.vouchers import (
    IncomingVoucherRequest,
    SaleVoucherRequest,
    TransferVoucherRequest,
    VoucherLinePayload,
    VoucherResponse,
)
from app.stockledger.services.idempotency import IdempotencyService, extract_idempotency_key
from app.stockledger.services.vouchers import VoucherCoordinator, VoucherLineInput


router = APIRouter()
_ERROR_RESPONSES = {
    404: {"model": ApiErrorResponse},
    409: {"model": ApiErrorResponse},
    422: {"model": ApiValidationErrorResponse},
    503: {"model": ApiErrorResponse},
    504: {"model": ApiErrorResponse},
}


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _line_inputs(lines: list[VoucherLinePayload]) -> list[VoucherLineInput]:
    return [
        VoucherLineInput(
            item=line.item,
            series=line.series,
            category=line.category,
            quantity=line.quantity,
            size_breakdown=line.size_breakdown,
        )
        for line in lines
    ]


def _start_idempotency(request: Request, db, payload):
    idempotency_key = extract_idempotency_key(request.headers)
    if not idempotency_key:
        return None, None
    context, replay = IdempotencyService(db).start(
        endpoint=str(request.url.path),
        method=request.method,
        idempotency_key=idempotency_key,
        request_hash=IdempotencyService.fingerprint(payload.model_dump(mode="json")),
    )
    if replay:
        return None, JSONResponse(
            status_code=replay.status_code,
            content=replay.response_body,
            headers={"X-Idempotency-Result": ErrorCatalog.IDEMPOTENCY_REPLAY.code},
        )
    request.state.idempotency = context
    return context, None


def _respond(request: Request, context, kind: str, voucher_id, lines: list[VoucherLinePayload]) -> VoucherResponse:
    response = VoucherResponse(
        voucher_id=str(voucher_id),
        kind=kind,
        lines=len(lines),
        total_quantity=sum(line.quantity for line in lines),
        trace_id=_trace_id(request),
    )
    if context is not None:
        context.record_success(status_code=201, response_body=response.model_dump(mode="json", by_alias=True))
    return response


@router.post("/vouchers/incoming", response_model=VoucherResponse, status_code=201, responses=_ERROR_RESPONSES)
def post_incoming(request: Request, payload: IncomingVoucherRequest, db=Depends(get_db)):
    context, replay = _start_idempotency(request, db, payload)
    if replay:
        return replay
    coordinator = VoucherCoordinator(db, trace_id=_trace_id(request))
    voucher_id = coordinator.post_incoming(payload.actor, payload.location, _line_inputs(payload.lines))
    return _respond(request, context, VOUCHER_INCOMING, voucher_id, payload.lines)


@router.post("/vouchers/sales", response_model=VoucherResponse, status_code=201, responses=_ERROR_RESPONSES)
def post_sale(request: Request, payload: SaleVoucherRequest, db=Depends(get_db)):
    context, replay = _start_idempotency(request, db, payload)
    if replay:
        return replay
    coordinator = VoucherCoordinator(db, trace_id=_trace_id(request))
    voucher_id = coordinator.post_sale(
        payload.actor,
        payload.location,
        payload.customer,
        payload.external_ref,
        _line_inputs(payload.lines),
    )
    return _respond(request, context, VOUCHER_SALE, voucher_id, payload.lines)


@router.post("/vouchers/transfers", response_model=VoucherResponse, status_code=201, responses=_ERROR_RESPONSES)
def post_transfer(request: Request, payload: TransferVoucherRequest, db=Depends(get_db)):
    context, replay = _start_idempotency(request, db, payload)
    if replay:
        return replay
    coordinator = VoucherCoordinator(db, trace_id=_trace_id(request))
    voucher_id = coordinator.post_transfer(
        payload.actor,
        payload.from_location,
        payload.to_location,
        _line_inputs(payload.lines),
    )
    return _respond(request, context, VOUCHER_TRANSFER, voucher_id, payload.lines)
