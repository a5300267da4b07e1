"""Read access to tours, events and users."""

import logging
from typing import TYPE_CHECKING

from charter_bookings.models import (
    BookingType,
    Err,
    ErrorKind,
    Event,
    Ok,
    Result,
    Tour,
    User,
)

from .dynamodb import model_to_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class CatalogService:
    """Loads catalog entries with their current pickup prices."""

    USERS_TABLE = "users"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get_event(self, event_id: str) -> Result[Event]:
        item = self.db.get_item(BookingType.EVENT.catalog_table, {"event_id": event_id})
        if not item:
            logger.info("Event %s not found", event_id)
            return Err.of(ErrorKind.NOT_FOUND, "Event not found")
        return Ok(Event.model_validate(item))

    def get_tour(self, tour_id: str) -> Result[Tour]:
        item = self.db.get_item(BookingType.TOUR.catalog_table, {"tour_id": tour_id})
        if not item:
            logger.info("Tour %s not found", tour_id)
            return Err.of(ErrorKind.NOT_FOUND, "Tour not found")
        return Ok(Tour.model_validate(item))

    def get_user(self, user_id: str) -> User | None:
        item = self.db.get_item(self.USERS_TABLE, {"user_id": user_id})
        return User.model_validate(item) if item else None

    def set_stripe_customer_id(self, user_id: str, customer_id: str) -> None:
        """Remember the Stripe customer created for a user."""
        self.db.update_item(
            self.USERS_TABLE,
            {"user_id": user_id},
            "SET stripe_customer_id = :cid",
            {":cid": customer_id},
        )

    def save_event(self, event: Event) -> None:
        self.db.put_item(BookingType.EVENT.catalog_table, model_to_item(event))

    def save_tour(self, tour: Tour) -> None:
        self.db.put_item(BookingType.TOUR.catalog_table, model_to_item(tour))

    def save_user(self, user: User) -> None:
        self.db.put_item(self.USERS_TABLE, model_to_item(user))

