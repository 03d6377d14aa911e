"""
Appointment Routes - structure free text or a photo into appointment fields.

Gated like chat (kill switch, identity, admission) because it spends
model quota. Provider failures degrade to heuristics and still return 200.
"""
from fastapi import APIRouter, Depends

from friction_router.api.deps import (
    appointment_payload,
    client_ip,
    get_admission_controller,
    get_appointment_service,
    limit_appointment_body,
    require_ai_enabled,
    require_identity,
)
from friction_router.core.rate_limiter import AdmissionController
from friction_router.models.auth import VerifiedIdentity
from friction_router.models.auxiliary import AppointmentRequest, AppointmentResponse
from friction_router.models.chat import ErrorResponse
from friction_router.services.appointment_service import AppointmentService

router = APIRouter(
    prefix="/api/appointments",
    tags=["Appointments"],
    responses={429: {"model": ErrorResponse, "description": "Rate limit exceeded"}},
)


@router.post(
    "/structure",
    response_model=AppointmentResponse,
    summary="Extract appointment details",
    dependencies=[Depends(require_ai_enabled), Depends(limit_appointment_body)],
)
def structure_appointment(
    identity: VerifiedIdentity = Depends(require_identity),
    payload: AppointmentRequest = Depends(appointment_payload),
    ip: str = Depends(client_ip),
    admission: AdmissionController = Depends(get_admission_controller),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    decision = admission.check_admission(identity, ip)
    if not decision.allowed:
        raise decision.to_exception()
    return service.extract(payload)
