"""
Statistics service for the organizer dashboard.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    Booking,
    BookingStatus,
    Event,
    EventStatus,
    PaymentStatus,
    ScanResult,
    ScanType,
    Ticket,
    TicketScanLog,
    TicketStatus,
    User,
)
from ..schemas.statistics import (
    EventTicketStatistics,
    EventTimeStatus,
    OrganizerEventStatistics,
    OrganizerStatisticsResponse,
    OrganizerTotals,
    RecentScan,
)

ACTIVE = Booking.booking_status == BookingStatus.CONFIRMED


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole > 0 else 0.0


class StatisticsService:
    """Service for organizer reporting."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_organizer_statistics(
        self,
        user: User,
        event_id: Optional[UUID] = None
    ) -> OrganizerStatisticsResponse:
        """
        Ticket sales, revenue and check-in figures per event.

        Organizers see their own events, admins see every event.

        Args:
            user: Organizer or admin
            event_id: Restrict the report to one event
        """
        now = datetime.now(timezone.utc)

        events_query = select(Event).order_by(Event.event_date)
        if not user.is_admin:
            events_query = events_query.where(Event.organizer_id == user.id)
        if event_id is not None:
            events_query = events_query.where(Event.id == event_id)

        events = list((await self.db.execute(events_query)).scalars().all())
        if not events:
            return OrganizerStatisticsResponse(total_stats=OrganizerTotals(), last_updated=now)

        event_ids = [event.id for event in events]
        booking_rows = await self._booking_figures(event_ids)
        ticket_rows = await self._ticket_figures(event_ids)
        recent_scans = await self._recent_check_ins(event_ids)

        event_stats = []
        for event in events:
            bookings = booking_rows.get(event.id, {})
            tickets = ticket_rows.get(event.id, {})

            paid = bookings.get("paid", 0)
            scanned = tickets.get("scanned", 0)
            is_today = event.event_date.date() == now.date()

            event_stats.append(OrganizerEventStatistics(
                id=event.id,
                title=event.title,
                event_date=event.event_date,
                status=event.status,
                venue=event.venue,
                location=event.location,
                price=event.price,
                max_attendees=event.max_attendees,
                statistics=EventTicketStatistics(
                    total_tickets=bookings.get("total", 0),
                    paid_tickets=paid,
                    pending_tickets=bookings.get("pending", 0),
                    cancelled_tickets=bookings.get("cancelled", 0),
                    scanned_tickets=scanned,
                    unscanned_tickets=max(paid - scanned, 0),
                    revenue=bookings.get("revenue", Decimal("0")),
                    scan_rate=_percent(scanned, paid),
                    occupancy_rate=_percent(event.current_attendees, event.max_attendees),
                    available_spots=event.available_spots
                ),
                time_status=EventTimeStatus(
                    is_upcoming=event.event_date > now,
                    is_today=is_today,
                    is_past=event.event_date < now and not is_today
                ),
                recent_scans=recent_scans.get(event.id, [])
            ))

        generated = sum(rows.get("generated", 0) for rows in ticket_rows.values())
        scanned_total = sum(rows.get("scanned", 0) for rows in ticket_rows.values())

        totals = OrganizerTotals(
            total_events=len(events),
            total_tickets_generated=generated,
            total_tickets_scanned=scanned_total,
            total_revenue=sum((rows.get("revenue", Decimal("0")) for rows in booking_rows.values()), Decimal("0")),
            scan_rate=_percent(scanned_total, generated),
            upcoming_events=sum(1 for e in event_stats if e.time_status.is_upcoming),
            today_events=sum(1 for e in event_stats if e.time_status.is_today),
            past_events=sum(1 for e in event_stats if e.time_status.is_past),
            active_events=sum(1 for e in events if e.status == EventStatus.PUBLISHED)
        )

        return OrganizerStatisticsResponse(events=event_stats, total_stats=totals, last_updated=now)

    async def _booking_figures(self, event_ids: List[UUID]) -> Dict[UUID, Dict]:
        """Ticket quantities by payment state and revenue, per event."""
        query = select(
            Booking.event_id,
            func.coalesce(func.sum(Booking.quantity), 0).label('total'),
            func.coalesce(func.sum(case(
                (ACTIVE & (Booking.payment_status == PaymentStatus.COMPLETED), Booking.quantity),
                else_=0
            )), 0).label('paid'),
            func.coalesce(func.sum(case(
                (ACTIVE & (Booking.payment_status != PaymentStatus.COMPLETED), Booking.quantity),
                else_=0
            )), 0).label('pending'),
            func.coalesce(func.sum(case(
                (Booking.booking_status != BookingStatus.CONFIRMED, Booking.quantity),
                else_=0
            )), 0).label('cancelled'),
            func.coalesce(func.sum(case(
                (Booking.payment_status == PaymentStatus.COMPLETED, Booking.total_amount),
                else_=0
            )), 0).label('revenue'),
        ).where(Booking.event_id.in_(event_ids)).group_by(Booking.event_id)

        result = await self.db.execute(query)
        return {
            row.event_id: {
                "total": int(row.total),
                "paid": int(row.paid),
                "pending": int(row.pending),
                "cancelled": int(row.cancelled),
                "revenue": Decimal(str(row.revenue)),
            }
            for row in result
        }

    async def _ticket_figures(self, event_ids: List[UUID]) -> Dict[UUID, Dict]:
        query = select(
            Ticket.event_id,
            func.count(Ticket.id).label('generated'),
            func.count(case((Ticket.status == TicketStatus.USED, 1))).label('scanned'),
        ).where(Ticket.event_id.in_(event_ids)).group_by(Ticket.event_id)

        result = await self.db.execute(query)
        return {
            row.event_id: {"generated": row.generated, "scanned": row.scanned}
            for row in result
        }

    async def _recent_check_ins(self, event_ids: List[UUID], per_event: int = 10) -> Dict[UUID, List[RecentScan]]:
        result = await self.db.execute(
            select(TicketScanLog)
            .where(
                TicketScanLog.event_id.in_(event_ids),
                TicketScanLog.scan_type == ScanType.CHECK_IN,
                TicketScanLog.scan_result == ScanResult.SUCCESS
            )
            .order_by(TicketScanLog.created_at.desc())
        )

        scans: Dict[UUID, List[RecentScan]] = {}
        for log in result.scalars():
            event_scans = scans.setdefault(log.event_id, [])
            if len(event_scans) < per_event:
                event_scans.append(RecentScan(
                    id=log.id,
                    ticket_id=log.ticket_id,
                    ticket_number=log.ticket_number,
                    scanned_at=log.created_at,
                    scanned_by=log.scanned_by
                ))
        return scans
