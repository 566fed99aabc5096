from datetime import date, datetime, time

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import CurrentUser, get_current_user
from backend.core.exceptions import ForbiddenError
from backend.core.timeutils import parse_hhmm
from backend.database import get_db
from backend.integrations.zoom_client import ZoomClient, get_zoom_client
from backend.services import booking_status, bookings
from backend.services.availability import is_valid_time
from backend.services.notifications import deliver_notifications

router = APIRouter(tags=['bookings'])


class CreateBookingRequest(BaseModel):
    service_id: str
    seller_id: str
    buyer_id: str
    meeting_date: date
    meeting_start_time: time
    meeting_end_time: time
    duration_minutes: int = Field(gt=0)
    price: int = Field(gt=0)
    service_title: str
    seller_name: str
    buyer_name: str

    @field_validator('service_id', 'seller_id', 'buyer_id', 'service_title', 'seller_name', 'buyer_name')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field is required.')
        return normalized

    @field_validator('meeting_start_time', 'meeting_end_time', mode='before')
    @classmethod
    def validate_meeting_time(cls, value):
        if isinstance(value, time):
            return value
        if not is_valid_time(value):
            raise ValueError('Time must be in HH:MM format.')
        return parse_hhmm(value)

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateBookingRequest':
        if self.meeting_end_time <= self.meeting_start_time:
            raise ValueError('Meeting end time must be after the start time.')
        return self


class UpdateBookingStatusRequest(BaseModel):
    id: int
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Status is required.')
        return normalized


class BookingResponse(BaseModel):
    id: int
    service_id: str
    seller_id: str
    buyer_id: str
    meeting_date: date
    meeting_start_time: time
    meeting_end_time: time
    duration_minutes: int
    price: int
    service_title: str | None = None
    seller_name: str | None = None
    buyer_name: str | None = None
    booking_status: str
    meeting_status: str
    payment_status: str
    zoom_meeting_id: str | None = None
    zoom_join_url: str | None = None
    zoom_password: str | None = None
    zoom_host_url: str | None = None
    zoom_meeting_created: bool
    is_historical: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class BookingListItem(BookingResponse):
    user_role: str
    is_upcoming: bool


class CreateBookingResponse(BaseModel):
    success: bool
    message: str
    booking: BookingResponse


class BookingListResponse(BaseModel):
    success: bool
    data: list[BookingListItem]
    count: int


class BookingStatusResponse(BaseModel):
    success: bool
    message: str
    data: BookingResponse


@router.post('', response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if data.buyer_id != current_user.id:
        raise ForbiddenError('Bookings can only be requested for your own account.')

    result = bookings.create_booking(db, bookings.NewBooking(**data.model_dump()))
    background_tasks.add_task(deliver_notifications, result.notifications)

    return CreateBookingResponse(
        success=True,
        message=result.message,
        booking=BookingResponse.model_validate(result.booking),
    )


@router.get('/{user_id}', response_model=BookingListResponse)
def list_user_bookings(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    rows = bookings.list_upcoming_bookings(db, user_id)
    items = [
        BookingListItem(
            **BookingResponse.model_validate(row['booking']).model_dump(),
            user_role=row['user_role'],
            is_upcoming=row['is_upcoming'],
        )
        for row in rows
    ]
    return BookingListResponse(success=True, data=items, count=len(items))


@router.put('/status', response_model=BookingStatusResponse)
def change_booking_status(
    data: UpdateBookingStatusRequest,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    zoom: ZoomClient = Depends(get_zoom_client),
):
    del current_user
    result = booking_status.update_booking_status(db, data.id, data.status, zoom)
    if result.notifications:
        background_tasks.add_task(deliver_notifications, result.notifications)

    return BookingStatusResponse(
        success=True,
        message=result.message,
        data=BookingResponse.model_validate(result.booking),
    )
