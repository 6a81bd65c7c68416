"""
Ticket verification and check-in at the venue door.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..cache import CacheInvalidator, CacheKeyBuilder, CacheTTL, get_cache
from ..config import get_settings
from ..models import (
    PRINTED_TICKET_TYPE,
    PrintedTicket,
    ScanResult,
    ScanType,
    Ticket,
    TicketScanLog,
    TicketStatus,
    User,
)
from ..models.base import utc_now
from ..schemas.verification import ScanLogResponse, TicketInfo, VerificationResult, VerificationStats
from ..utils.exceptions import AuthorizationError
from ..utils.logging_config import log_business_event, log_security_event
from ..utils.qr_codes import decrypt_qr_data, extract_qr_token
from .event_service import EventService

logger = logging.getLogger(__name__)

TERMINAL_RESULTS = {
    TicketStatus.USED: ScanResult.ALREADY_USED,
    TicketStatus.CANCELLED: ScanResult.CANCELLED,
    TicketStatus.EXPIRED: ScanResult.EXPIRED,
}


class VerificationService:
    """Service class for scanning tickets and check-in statistics."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()
        self.cache = get_cache()
        self.event_service = EventService(db)

    async def verify_ticket(
        self,
        scanner: User,
        *,
        qr_token: Optional[str] = None,
        ticket_number: Optional[str] = None,
        event_id: Optional[UUID] = None,
        check_in: bool = True,
        device_info: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        location: Optional[str] = None
    ) -> VerificationResult:
        """
        Verify a scanned ticket and, when ``check_in`` is set, admit it.

        Checks run in a fixed order: token decryption, ticket lookup, scanner
        permission, event match, ticket status, check-in window. Admission is
        a conditional ``valid -> used`` update so two doors scanning the same
        ticket at once admit it only once. Every outcome is written to the
        scan log.

        Printed tickets go through the same checks. Their QR claims are
        marked ``printed``, and a typed code that matches no booked ticket
        is looked up among the printed tickets.

        Args:
            scanner: Profile operating the scanner
            qr_token: Encrypted QR token or validation URL
            ticket_number: Typed ticket number or printed code, used when no token is given
            event_id: Event the scanner is working, if any
            check_in: Admit the ticket; otherwise only report whether it would be
            device_info: Free-form scanner metadata
            ip_address: Scanner address
            location: Gate or entrance name

        Returns:
            Verification result

        Raises:
            AuthorizationError: When the scanner may not scan for the ticket's event
        """
        now = utc_now()
        scan_type = ScanType.CHECK_IN if check_in else ScanType.VERIFICATION
        log_context = {
            "scanned_by": scanner.id,
            "scan_type": scan_type,
            "device_info": device_info,
            "ip_address": ip_address,
            "location": location,
        }

        ticket = None
        if qr_token:
            data = decrypt_qr_data(extract_qr_token(qr_token))
            if data is None:
                return await self._finish(
                    None, ScanResult.INVALID, "Invalid QR code", now, log_context,
                    event_id=event_id
                )
            model = PrintedTicket if data.ticket_type == PRINTED_TICKET_TYPE else Ticket
            try:
                ticket = await self._load_ticket(model, model.id == UUID(data.ticket_id))
            except ValueError:
                ticket = None
            if ticket is not None and ticket.ticket_number != data.ticket_number:
                ticket = None
            ticket_number = data.ticket_number
        elif ticket_number:
            ticket_number = ticket_number.strip()
            ticket = await self._load_ticket(Ticket, Ticket.ticket_number == ticket_number)
            if ticket is None:
                ticket = await self._find_printed_ticket(ticket_number, event_id)

        if ticket is None:
            return await self._finish(
                None, ScanResult.INVALID, "Invalid ticket - Not found in system", now, log_context,
                event_id=event_id, ticket_number=ticket_number
            )

        if not await self.event_service.can_scan(scanner, ticket.event):
            self._write_log(
                ticket, ScanResult.UNAUTHORIZED, "Scanner is not staff for this event", log_context
            )
            await self.db.commit()
            log_security_event(
                "unauthorized_ticket_scan",
                {
                    "scanner_id": str(scanner.id),
                    "ticket_number": ticket.ticket_number,
                    "ticket_event_id": str(ticket.event_id),
                }
            )
            raise AuthorizationError(
                "You are not authorized to verify tickets for this event",
                required_permission="event:scan"
            )

        if event_id is not None and ticket.event_id != event_id:
            return await self._finish(
                ticket, ScanResult.WRONG_EVENT,
                f"This ticket is for a different event: {ticket.event.title}", now, log_context
            )

        await self._record_scan(ticket, now)

        terminal = TERMINAL_RESULTS.get(ticket.status)
        if terminal is not None:
            return await self._finish(ticket, terminal, self._terminal_message(ticket), now, log_context)

        opens_at = ticket.event.event_date - timedelta(hours=self.settings.check_in_window_hours)
        if now < opens_at:
            hours = math.ceil((opens_at - now).total_seconds() / 3600)
            result = await self._finish(
                ticket, ScanResult.TOO_EARLY,
                f"Check-in opens in {hours} hour{'s' if hours != 1 else ''}", now, log_context
            )
            result.check_in_opens_at = opens_at
            result.hours_until_check_in = hours
            return result

        if not check_in:
            return await self._finish(ticket, ScanResult.SUCCESS, "Ticket is valid", now, log_context)

        model = type(ticket)
        admitted = await self.db.execute(
            update(model)
            .where(model.id == ticket.id, model.status == TicketStatus.VALID)
            .values(status=TicketStatus.USED, checked_in_at=now, checked_in_by=scanner.id)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(ticket, attribute_names=["status", "checked_in_at", "checked_in_by"])

        if admitted.rowcount == 0:
            return await self._finish(
                ticket, ScanResult.ALREADY_USED, self._terminal_message(ticket), now, log_context
            )

        result = await self._finish(ticket, ScanResult.SUCCESS, "Check-in successful", now, log_context)
        await CacheInvalidator.invalidate_verification_caches(str(ticket.event_id))

        log_business_event(
            "ticket_checked_in",
            {
                "ticket_number": ticket.ticket_number,
                "event_id": str(ticket.event_id),
                "gate": location,
            },
            user_id=str(scanner.id)
        )
        return result

    async def _load_ticket(self, model, condition):
        result = await self.db.execute(
            select(model)
            .options(selectinload(model.event))
            .where(condition)
        )
        return result.scalar_one_or_none()

    async def _find_printed_ticket(self, code: str, event_id: Optional[UUID]) -> Optional[PrintedTicket]:
        """Printed codes are unique per event; an ambiguous code matches nothing."""
        query = (
            select(PrintedTicket)
            .options(selectinload(PrintedTicket.event))
            .where(PrintedTicket.ticket_code == code.upper())
        )
        if event_id is not None:
            query = query.where(PrintedTicket.event_id == event_id)

        matches = list((await self.db.execute(query.limit(2))).scalars().all())
        return matches[0] if len(matches) == 1 else None

    async def _record_scan(self, ticket, now: datetime) -> None:
        model = type(ticket)
        await self.db.execute(
            update(model)
            .where(model.id == ticket.id)
            .values(
                scan_count=model.scan_count + 1,
                first_scanned_at=func.coalesce(model.first_scanned_at, now),
                last_scanned_at=now
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(
            ticket,
            attribute_names=["scan_count", "first_scanned_at", "last_scanned_at", "status", "checked_in_at"]
        )

    def _terminal_message(self, ticket) -> str:
        if ticket.status == TicketStatus.USED:
            if ticket.checked_in_at:
                return f"Ticket already used at {ticket.checked_in_at.isoformat()}"
            return "Ticket already used"
        if ticket.status == TicketStatus.CANCELLED:
            return "Ticket has been cancelled"
        return "Ticket has expired"

    def _write_log(
        self,
        ticket,
        scan_result: ScanResult,
        message: Optional[str],
        log_context: Dict[str, Any],
        event_id: Optional[UUID] = None,
        ticket_number: Optional[str] = None
    ) -> None:
        self.db.add(TicketScanLog(
            ticket_id=ticket.id if isinstance(ticket, Ticket) else None,
            printed_ticket_id=ticket.id if isinstance(ticket, PrintedTicket) else None,
            ticket_number=ticket.ticket_number if ticket else ticket_number,
            event_id=ticket.event_id if ticket else event_id,
            scan_result=scan_result,
            error_message=None if scan_result == ScanResult.SUCCESS else message,
            **log_context
        ))

    async def _finish(
        self,
        ticket,
        scan_result: ScanResult,
        message: str,
        now: datetime,
        log_context: Dict[str, Any],
        event_id: Optional[UUID] = None,
        ticket_number: Optional[str] = None
    ) -> VerificationResult:
        self._write_log(ticket, scan_result, message, log_context, event_id, ticket_number)
        await self.db.commit()

        logger.info(
            f"Scan by {log_context['scanned_by']}: {scan_result.value} "
            f"({ticket.ticket_number if ticket else ticket_number or 'unknown ticket'})"
        )
        return VerificationResult(
            success=scan_result == ScanResult.SUCCESS,
            scan_result=scan_result,
            message=message,
            ticket_info=self._ticket_info(ticket) if ticket else None,
            scanned_at=now
        )

    def _ticket_info(self, ticket) -> TicketInfo:
        return TicketInfo(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            ticket_type=ticket.ticket_type,
            status=ticket.status,
            seat_number=ticket.seat_number,
            attendee_name=ticket.attendee_name,
            scan_count=ticket.scan_count,
            checked_in_at=ticket.checked_in_at,
            event_id=ticket.event_id,
            event_title=ticket.event.title,
            event_date=ticket.event.event_date,
            venue=ticket.event.venue
        )

    async def _ensure_can_view(self, user: User, event_id: UUID):
        event = await self.event_service.get_event(event_id)
        if not (
            await self.event_service.can_scan(user, event)
            or await self.event_service.is_event_staff(event_id, user.id)
        ):
            raise AuthorizationError("You do not have access to this event's check-in data")
        return event

    async def get_event_verification_stats(self, user: User, event_id: UUID) -> Dict[str, Any]:
        """
        Check-in statistics for an event, cached briefly.

        Returns:
            ``VerificationStats`` as a JSON-compatible dict

        Raises:
            EventNotFoundError: When the event does not exist
            AuthorizationError: When the user is not organizer, admin or staff
        """
        event = await self._ensure_can_view(user, event_id)

        cache_key = CacheKeyBuilder.verification_stats(str(event_id))
        cached = await self.cache.get(cache_key)
        if cached:
            return cached

        status_rows = await self.db.execute(
            select(Ticket.status, func.count(Ticket.id))
            .where(Ticket.event_id == event_id)
            .group_by(Ticket.status)
        )
        by_status = {status: count for status, count in status_rows.all()}
        total_tickets = sum(by_status.values())
        checked_in = by_status.get(TicketStatus.USED, 0)

        result_rows = await self.db.execute(
            select(TicketScanLog.scan_result, func.count(TicketScanLog.id))
            .where(TicketScanLog.event_id == event_id)
            .group_by(TicketScanLog.scan_result)
        )
        scans_by_result = {result.value: count for result, count in result_rows.all()}

        last_check_in_at = (await self.db.execute(
            select(func.max(Ticket.checked_in_at)).where(Ticket.event_id == event_id)
        )).scalar_one()

        printed_rows = await self.db.execute(
            select(PrintedTicket.status, func.count(PrintedTicket.id))
            .where(PrintedTicket.event_id == event_id)
            .group_by(PrintedTicket.status)
        )
        printed_by_status = {status: count for status, count in printed_rows.all()}

        stats = VerificationStats(
            event_id=event.id,
            event_title=event.title,
            total_tickets=total_tickets,
            checked_in=checked_in,
            remaining=by_status.get(TicketStatus.VALID, 0),
            cancelled=by_status.get(TicketStatus.CANCELLED, 0),
            expired=by_status.get(TicketStatus.EXPIRED, 0),
            check_in_rate=round(checked_in / total_tickets * 100, 1) if total_tickets else 0.0,
            total_scans=sum(scans_by_result.values()),
            scans_by_result=scans_by_result,
            last_check_in_at=last_check_in_at,
            printed_tickets=sum(printed_by_status.values()),
            printed_checked_in=printed_by_status.get(TicketStatus.USED, 0),
            recent_scans=[
                ScanLogResponse.model_validate(log)
                for log in await self._recent_logs(event_id, 10)
            ]
        ).model_dump(mode="json")

        await self.cache.set(cache_key, stats, CacheTTL.VERIFICATION_STATS)
        return stats

    async def list_scan_logs(self, user: User, event_id: UUID, limit: int = 100) -> List[TicketScanLog]:
        await self._ensure_can_view(user, event_id)
        return await self._recent_logs(event_id, limit)

    async def _recent_logs(self, event_id: UUID, limit: int) -> List[TicketScanLog]:
        result = await self.db.execute(
            select(TicketScanLog)
            .where(TicketScanLog.event_id == event_id)
            .order_by(TicketScanLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
