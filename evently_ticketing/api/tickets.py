"""
Ticket API endpoints: listing, QR images, PDFs and QR validation.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Ticket, User
from ..schemas.ticket import QRValidationResponse, TicketResponse
from ..services.ticket_service import TicketService
from ..utils.dependencies import get_current_user
from ..utils.qr_codes import generate_validation_url

router = APIRouter(prefix="/tickets", tags=["tickets"])


def get_ticket_service(db: AsyncSession = Depends(get_db)) -> TicketService:
    return TicketService(db)


def create_ticket_response(ticket: Ticket) -> TicketResponse:
    """Create a TicketResponse from a ticket model with its event loaded."""
    response = TicketResponse.model_validate(ticket)
    if ticket.qr_code:
        response.validation_url = generate_validation_url(ticket.qr_code)
    return response


@router.get("", response_model=List[TicketResponse])
async def list_my_tickets(
    current_user: User = Depends(get_current_user),
    ticket_service: TicketService = Depends(get_ticket_service)
):
    """Tickets from the current user's paid bookings."""
    tickets = await ticket_service.list_user_tickets(current_user)
    return [create_ticket_response(ticket) for ticket in tickets]


@router.get("/validate", response_model=QRValidationResponse)
async def validate_qr_code(
    data: str = Query(..., min_length=1, description="Encrypted QR token"),
    ticket_service: TicketService = Depends(get_ticket_service)
):
    """
    Look up the ticket behind a scanned QR code.

    This is what a generic phone camera opens. It never checks a ticket in;
    door staff use the verification endpoints for that.
    """
    return await ticket_service.validate_qr(data)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: UUID,
    current_user: User = Depends(get_current_user),
    ticket_service: TicketService = Depends(get_ticket_service)
):
    ticket = await ticket_service.get_ticket(current_user, ticket_id)
    return create_ticket_response(ticket)


@router.get("/{ticket_id}/qr.png")
async def get_ticket_qr(
    ticket_id: UUID,
    current_user: User = Depends(get_current_user),
    ticket_service: TicketService = Depends(get_ticket_service)
):
    """QR code image encoding the ticket's validation URL."""
    ticket = await ticket_service.get_ticket(current_user, ticket_id)
    return Response(
        content=ticket_service.get_ticket_qr_png(ticket),
        media_type="image/png",
        headers={"Cache-Control": "private, max-age=3600"}
    )


@router.get("/{ticket_id}/ticket.pdf")
async def download_ticket(
    ticket_id: UUID,
    current_user: User = Depends(get_current_user),
    ticket_service: TicketService = Depends(get_ticket_service)
):
    """Printable single-page ticket."""
    ticket = await ticket_service.get_ticket(current_user, ticket_id)
    return Response(
        content=ticket_service.render_ticket_pdf(ticket),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="ticket-{ticket.ticket_number}.pdf"'}
    )
