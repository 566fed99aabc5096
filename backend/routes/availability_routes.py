from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.auth.dependencies import CurrentUser, get_current_user
from backend.core.exceptions import ValidationError
from backend.database import get_db
from backend.services import availability as availability_service

router = APIRouter(tags=['availability'])


class UpdateAvailabilityRequest(BaseModel):
    # Shape is checked by the availability service so every problem is reported at once.
    availability: Any = None


class AvailabilityUpdateResponse(BaseModel):
    success: bool
    data: dict[str, Any]
    message: str


@router.get('', response_model=dict[str, Any])
def get_my_availability(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return availability_service.get_or_create_week(db, current_user.id)


@router.post('', response_model=AvailabilityUpdateResponse)
def update_my_availability(
    data: UpdateAvailabilityRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if data.availability is None:
        raise ValidationError('Availability data is required')

    availability = availability_service.update_week(
        db,
        current_user.id,
        data.availability,
        email=current_user.email,
    )
    return AvailabilityUpdateResponse(success=True, data=availability, message='Availability updated')


@router.get('/{user_id}', response_model=dict[str, Any])
def get_user_availability(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    return availability_service.get_or_create_week(db, user_id)
