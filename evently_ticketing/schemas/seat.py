"""
Pydantic schemas for seat management.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, model_validator

from ..models.seat import SeatLayout, SeatStatus


class SectionConfig(BaseModel):
    """Configuration for a venue section."""
    name: str = Field(..., min_length=1, max_length=50)
    seats: int = Field(..., gt=0, description="Number of seats in the section")
    price_override: Optional[Decimal] = Field(None, ge=0)


class SeatConfigRequest(BaseModel):
    """Schema for (re)configuring the seats of an event."""
    total_seats: int = Field(..., gt=0, le=10000, description="Total number of seats")
    layout_type: SeatLayout = Field(default=SeatLayout.SEQUENTIAL)
    seats_per_row: Optional[int] = Field(None, gt=0, le=100, description="Used by the rows layout")
    sections: Optional[List[SectionConfig]] = None
    has_seat_allocation: bool = True

    @model_validator(mode='after')
    def sections_match_total(self):
        """Validate that section sizes add up to the total for sectioned layouts."""
        if self.layout_type == SeatLayout.SECTIONS:
            if not self.sections:
                raise ValueError("sections are required for the sections layout")
            section_total = sum(section.seats for section in self.sections)
            if section_total != self.total_seats:
                raise ValueError(
                    f"Section seats ({section_total}) must add up to total_seats ({self.total_seats})"
                )
        return self


class SeatConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: UUID
    has_seat_allocation: bool
    total_seats: int
    layout_type: SeatLayout
    seats_per_row: Optional[int] = None
    sections: Optional[List[SectionConfig]] = None
    seats_created: int = 0


class SeatResponse(BaseModel):
    """Schema for seat response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    seat_number: str
    row_label: Optional[str] = None
    section: Optional[str] = None
    price_override: Optional[Decimal] = None
    status: SeatStatus
    booking_id: Optional[UUID] = None
    booked_at: Optional[datetime] = None


class SeatAvailabilityResponse(BaseModel):
    """Schema for the available seats of an event."""
    event_id: UUID
    has_seat_allocation: bool
    available_count: int
    seats: List[SeatResponse]
