"""Turn committed ORM rows into realtime ``RowChange`` events."""

from __future__ import annotations

from typing import Any, Optional

from src.api.schemas import NotificationResponse, RideResponse
from src.domain.enums import ChangeType
from src.domain.events import RowChange
from src.infrastructure.models import NotificationModel, RideModel
from src.infrastructure.realtime import ChangeFeed


def ride_payload(ride: RideModel) -> dict[str, Any]:
    return RideResponse.model_validate(ride).model_dump(mode="json")


def notification_payload(note: NotificationModel) -> dict[str, Any]:
    return NotificationResponse.model_validate(note).model_dump(mode="json")


async def publish_ride(
    feed: ChangeFeed,
    ride: RideModel,
    change_type: ChangeType,
    old_record: Optional[dict[str, Any]] = None,
) -> None:
    await feed.publish(
        ride.user_id,
        RowChange(
            table="rides",
            type=change_type,
            record=ride_payload(ride),
            old_record=old_record,
        ),
    )


async def publish_notification(
    feed: ChangeFeed,
    note: NotificationModel,
    change_type: ChangeType,
    old_record: Optional[dict[str, Any]] = None,
) -> None:
    await feed.publish(
        note.user_id,
        RowChange(
            table="notifications",
            type=change_type,
            record=notification_payload(note),
            old_record=old_record,
        ),
    )
