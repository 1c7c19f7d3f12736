import logging
from datetime import datetime
from typing import Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from domain import AllocationResult, PatientCategory, Severity, SlotStatus, TokenStatus
from engine import TokenEngine
from errors import EngineError, InvalidStateError, NotFoundError, UnprocessableError
from logging_config import setup_logging
from seed import initialize_system
from settings import get_settings

settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
engine = TokenEngine()

if settings.seed_on_startup:
    initialize_system(engine, settings)


ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 409,
    UnprocessableError: 422,
}


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    code = ERROR_STATUS.get(type(exc), 400)
    logger.info("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"success": False, "error": str(exc)})


# --- Request models ---


class CreateTokenRequest(BaseModel):
    patient_name: str = Field(min_length=2)
    category: PatientCategory
    doctor_id: str = Field(min_length=1)
    preferred_slot_id: Optional[str] = None


class EmergencyTokenRequest(BaseModel):
    patient_name: str = Field(min_length=2)
    doctor_id: str = Field(min_length=1)
    severity: Severity


class CancelTokenRequest(BaseModel):
    reason: Optional[str] = None


class DoctorDelayRequest(BaseModel):
    doctor_id: str = Field(min_length=1)
    delay_minutes: int = Field(ge=1)
    from_slot_id: str = Field(min_length=1)


class RedistributeSlotRequest(BaseModel):
    slot_id: str = Field(min_length=1)


class DoctorUnavailableRequest(BaseModel):
    doctor_id: str = Field(min_length=1)
    reason: str = Field(min_length=1)


# --- Response models ---


class TokenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_name: str
    category: PatientCategory
    priority: int
    doctor_id: str
    slot_id: Optional[str] = None
    status: TokenStatus
    created_at: datetime
    allocated_at: Optional[datetime] = None
    bump_count: int
    severity: Optional[Severity] = None


class SlotInfo(BaseModel):
    slot_id: str
    current_load: int
    max_capacity: int


class AllocationResponse(BaseModel):
    success: bool
    message: str
    token: TokenResponse
    slot: Optional[SlotInfo] = None
    bumped_token: Optional[TokenResponse] = None
    promoted_token: Optional[TokenResponse] = None
    queue_position: Optional[int] = None
    severity: Optional[Severity] = None
    reason: Optional[str] = None


class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    specialization: str
    slot_ids: List[str]


class SlotResponse(BaseModel):
    id: str
    doctor_id: str
    doctor_name: str
    start_time: str
    end_time: str
    max_capacity: int
    current_load: int
    status: SlotStatus
    allocated_tokens: List[str]
    waitlist: List[str]
    utilization: str
    utilization_percentage: float
    waitlist_count: int
    spots_left: int


class SlotDetailResponse(BaseModel):
    slot: SlotResponse
    allocated_tokens: List[TokenResponse]
    waitlist_tokens: List[TokenResponse]


class DoctorSlotsResponse(BaseModel):
    doctor: DoctorResponse
    slots: List[SlotResponse]
    total_slots: int


class SlotAvailabilityResponse(BaseModel):
    slot_id: str
    time: str
    available: bool
    spots_left: int
    current_load: int
    max_capacity: int
    status: SlotStatus
    waitlist_count: int


class TokenDetailResponse(BaseModel):
    token: TokenResponse
    doctor: Optional[Dict[str, str]] = None
    slot: Optional[Dict[str, str]] = None


class DelayImpactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    delayed_slot_ids: List[str]
    affected_token_count: int
    overflow_created: bool
    suggestions: List[str]
    merged_capacity: Optional[int] = None


class RedistributionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    redistributed: int
    failed: int
    details: List[str]


class UnavailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    affected_slots: int
    affected_patients: int
    redistribution_plan: List[str]


def to_token_response(token) -> TokenResponse:
    return TokenResponse.model_validate(token)


def to_allocation_response(result: AllocationResult, **extra) -> AllocationResponse:
    return AllocationResponse(
        success=result.success,
        message=result.message,
        token=to_token_response(result.token),
        slot=SlotInfo(**result.slot_info) if result.slot_info else None,
        bumped_token=to_token_response(result.bumped_token) if result.bumped_token else None,
        promoted_token=to_token_response(result.promoted_token)
        if result.promoted_token
        else None,
        queue_position=result.queue_position,
        **extra,
    )


# --- System ---


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.get("/api/system/overview")
def system_overview() -> dict:
    return engine.overview()


@app.post("/api/system/reset")
def reset_system() -> dict:
    """Re-seed doctors and slots, dropping every token."""
    initialize_system(engine, settings)
    return {"success": True, "message": "System reset and reinitialized"}


@app.post("/api/system/doctor-delay", response_model=DelayImpactResponse)
def doctor_delay(body: DoctorDelayRequest) -> DelayImpactResponse:
    impact = engine.handle_doctor_delay(body.doctor_id, body.delay_minutes, body.from_slot_id)
    return DelayImpactResponse.model_validate(impact)


@app.post("/api/system/redistribute-slot", response_model=RedistributionResponse)
def redistribute_slot(body: RedistributeSlotRequest) -> RedistributionResponse:
    return RedistributionResponse.model_validate(engine.redistribute_slot(body.slot_id))


@app.post("/api/system/doctor-unavailable", response_model=UnavailabilityResponse)
def doctor_unavailable(body: DoctorUnavailableRequest) -> UnavailabilityResponse:
    result = engine.handle_doctor_unavailable(body.doctor_id, body.reason)
    return UnavailabilityResponse.model_validate(result)


# --- Doctors & slots ---


@app.get("/api/doctors", response_model=List[DoctorResponse])
def list_doctors() -> List[DoctorResponse]:
    return [DoctorResponse.model_validate(d) for d in engine.list_doctors()]


@app.get("/api/doctors/{doctor_id}", response_model=DoctorResponse)
def get_doctor(doctor_id: str) -> DoctorResponse:
    return DoctorResponse.model_validate(engine.get_doctor(doctor_id))


@app.get("/api/doctors/{doctor_id}/slots", response_model=DoctorSlotsResponse)
def get_doctor_slots(doctor_id: str) -> DoctorSlotsResponse:
    slots = engine.list_slots(doctor_id)
    return DoctorSlotsResponse(
        doctor=DoctorResponse.model_validate(engine.get_doctor(doctor_id)),
        slots=[SlotResponse(**engine.slot_view(s.id)) for s in slots],
        total_slots=len(slots),
    )


@app.get("/api/slots", response_model=List[SlotResponse])
def list_slots() -> List[SlotResponse]:
    return [SlotResponse(**engine.slot_view(s.id)) for s in engine.list_slots()]


@app.get("/api/slots/{slot_id}", response_model=SlotDetailResponse)
def get_slot(slot_id: str) -> SlotDetailResponse:
    detail = engine.slot_detail(slot_id)
    return SlotDetailResponse(
        slot=SlotResponse(**detail["slot"]),
        allocated_tokens=[to_token_response(t) for t in detail["allocated_tokens"]],
        waitlist_tokens=[to_token_response(t) for t in detail["waitlist_tokens"]],
    )


@app.get("/api/slots/{slot_id}/availability", response_model=SlotAvailabilityResponse)
def get_slot_availability(slot_id: str) -> SlotAvailabilityResponse:
    view = engine.slot_view(slot_id)
    return SlotAvailabilityResponse(
        slot_id=view["id"],
        time=f"{view['start_time']} - {view['end_time']}",
        available=view["current_load"] < view["max_capacity"]
        and view["status"] != SlotStatus.CLOSED,
        spots_left=view["spots_left"],
        current_load=view["current_load"],
        max_capacity=view["max_capacity"],
        status=view["status"],
        waitlist_count=view["waitlist_count"],
    )


# --- Tokens ---


@app.post("/api/tokens", response_model=AllocationResponse)
def create_token(body: CreateTokenRequest) -> JSONResponse:
    logger.info("Token request: %s (%s)", body.patient_name, body.category.value)
    result = engine.allocate(
        body.patient_name, body.category, body.doctor_id, body.preferred_slot_id
    )
    payload = to_allocation_response(result)
    code = 201 if result.success else 200
    return JSONResponse(status_code=code, content=payload.model_dump(mode="json"))


@app.post("/api/tokens/emergency", response_model=AllocationResponse)
def create_emergency_token(body: EmergencyTokenRequest) -> JSONResponse:
    """
    Emergencies overflow instead of queueing, so this only fails when every
    slot of the doctor is CLOSED. The unplaced token is still returned.
    """
    logger.warning("Emergency token request: %s (%s)", body.patient_name, body.severity.value)
    result = engine.create_emergency(body.patient_name, body.doctor_id, body.severity)
    payload = to_allocation_response(result, severity=body.severity)
    code = 201 if result.success else 200
    return JSONResponse(status_code=code, content=payload.model_dump(mode="json"))


@app.get("/api/tokens", response_model=List[TokenResponse])
def list_tokens(
    status_filter: Optional[TokenStatus] = Query(None, alias="status"),
    doctor_id: Optional[str] = None,
) -> List[TokenResponse]:
    return [to_token_response(t) for t in engine.list_tokens(status_filter, doctor_id)]


@app.get("/api/tokens/stats/summary")
def token_stats() -> dict:
    return engine.token_stats()


@app.get("/api/tokens/{token_id}", response_model=TokenDetailResponse)
def get_token(token_id: str) -> TokenDetailResponse:
    token = engine.get_token(token_id)
    doctor = engine.get_doctor(token.doctor_id)
    slot = engine.get_slot(token.slot_id) if token.slot_id else None
    return TokenDetailResponse(
        token=to_token_response(token),
        doctor={"id": doctor.id, "name": doctor.name, "specialization": doctor.specialization},
        slot={"id": slot.id, "time": f"{slot.start_time} - {slot.end_time}", "status": slot.status.value}
        if slot
        else None,
    )


@app.delete("/api/tokens/{token_id}", response_model=AllocationResponse)
def cancel_token(token_id: str, body: Optional[CancelTokenRequest] = None) -> AllocationResponse:
    reason = body.reason if body else None
    logger.info("Cancelling token %s%s", token_id, f" (reason: {reason})" if reason else "")
    return to_allocation_response(engine.cancel(token_id), reason=reason)


@app.post("/api/tokens/{token_id}/no-show", response_model=AllocationResponse)
def mark_no_show(token_id: str) -> AllocationResponse:
    return to_allocation_response(engine.mark_no_show(token_id))


@app.post("/api/tokens/{token_id}/complete", response_model=TokenResponse)
def complete_token(token_id: str) -> TokenResponse:
    return to_token_response(engine.complete(token_id))


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
