"""
Printed ticket API endpoints: batch generation, listing and downloads.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import PrintedTicket, User
from ..schemas.printed_ticket import PrintedTicketCreate, PrintedTicketDownload, PrintedTicketResponse
from ..services.printed_ticket_service import PrintedTicketService
from ..utils.dependencies import get_current_organizer, get_current_user
from ..utils.qr_codes import generate_validation_url

router = APIRouter(tags=["printed-tickets"])


def get_printed_ticket_service(db: AsyncSession = Depends(get_db)) -> PrintedTicketService:
    return PrintedTicketService(db)


def create_printed_ticket_response(ticket: PrintedTicket) -> PrintedTicketResponse:
    response = PrintedTicketResponse.model_validate(ticket)
    response.validation_url = generate_validation_url(ticket.qr_code)
    return response


@router.post(
    "/printed-tickets",
    response_model=List[PrintedTicketResponse],
    status_code=status.HTTP_201_CREATED
)
async def generate_printed_tickets(
    data: PrintedTicketCreate,
    current_user: User = Depends(get_current_organizer),
    service: PrintedTicketService = Depends(get_printed_ticket_service)
):
    """
    Generate a batch of printed tickets for an event.

    Codes continue from the event's last printed ticket. Only the event
    organizer or an admin may print tickets.
    """
    tickets = await service.generate(current_user, data.event_id, data.quantity)
    return [create_printed_ticket_response(ticket) for ticket in tickets]


@router.get("/events/{event_id}/printed-tickets", response_model=List[PrintedTicketResponse])
async def list_printed_tickets(
    event_id: UUID,
    current_user: User = Depends(get_current_user),
    service: PrintedTicketService = Depends(get_printed_ticket_service)
):
    tickets = await service.list_event_tickets(current_user, event_id)
    return [create_printed_ticket_response(ticket) for ticket in tickets]


@router.get("/printed-tickets/{ticket_id}/qr.png")
async def get_printed_ticket_qr(
    ticket_id: UUID,
    current_user: User = Depends(get_current_user),
    service: PrintedTicketService = Depends(get_printed_ticket_service)
):
    """QR code image encoding the printed ticket's validation URL."""
    ticket = await service.get_printed_ticket(current_user, ticket_id)
    return Response(
        content=service.get_qr_png(ticket),
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="{ticket.ticket_code}.png"'}
    )


@router.post("/printed-tickets/download")
async def download_printed_tickets(
    data: PrintedTicketDownload,
    current_user: User = Depends(get_current_user),
    service: PrintedTicketService = Depends(get_printed_ticket_service)
):
    """ZIP with a QR image and a text label for each requested ticket."""
    archive = await service.build_download_zip(current_user, data.ticket_ids)
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": 'attachment; filename="printed-tickets.zip"'}
    )
