"""
Door scanning and check-in statistics endpoints.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..middleware.logging import get_client_ip
from ..models import User
from ..schemas.verification import ScanLogResponse, ScanRequest, VerificationResult, VerificationStats
from ..services.verification_service import VerificationService
from ..utils.dependencies import get_current_user

router = APIRouter(prefix="/verification", tags=["verification"])


def get_verification_service(db: AsyncSession = Depends(get_db)) -> VerificationService:
    return VerificationService(db)


@router.post("/scan", response_model=VerificationResult)
async def scan_ticket(
    scan: ScanRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    verification_service: VerificationService = Depends(get_verification_service)
):
    """
    Verify a ticket at the door and check it in.

    Every scan answers 200 with a ``scan_result`` (``success``,
    ``already_used``, ``wrong_event``, ``invalid``, ``cancelled``,
    ``expired``, ``too_early``). Scanners who are not admin, organizer or
    event staff get 403.
    """
    return await verification_service.verify_ticket(
        current_user,
        qr_token=scan.qr_data,
        ticket_number=scan.ticket_number,
        event_id=scan.event_id,
        check_in=scan.check_in,
        device_info=scan.device_info,
        ip_address=get_client_ip(request),
        location=scan.location
    )


@router.get("/events/{event_id}/stats", response_model=VerificationStats)
async def get_verification_stats(
    event_id: UUID,
    current_user: User = Depends(get_current_user),
    verification_service: VerificationService = Depends(get_verification_service)
):
    """Live check-in progress for an event."""
    return await verification_service.get_event_verification_stats(current_user, event_id)


@router.get("/events/{event_id}/logs", response_model=List[ScanLogResponse])
async def get_scan_logs(
    event_id: UUID,
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    verification_service: VerificationService = Depends(get_verification_service)
):
    """Most recent scan attempts for an event."""
    return await verification_service.list_scan_logs(current_user, event_id, limit)
