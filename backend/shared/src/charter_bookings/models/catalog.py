"""Catalog models: events, tours and their pickup/price configuration."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from charter_bookings.utils.money import Money

from .enums import UserRole


class PickupTime(BaseModel):
    """A selectable pickup time at an event pickup location."""

    time_id: str
    time: str = Field(..., description="Pickup time as HH:MM", examples=["18:30"])


class EventPickup(BaseModel):
    """Pickup location for one event schedule, with its prices."""

    pickup_id: str
    name: str | None = None
    hotel_id: str | None = None
    adult_price: Money = Field(default=Decimal("0"), ge=0)
    children_price: Money = Field(default=Decimal("0"), ge=0)
    pickup_times: list[PickupTime] = Field(default_factory=list)

    def find_time(self, time_id: str) -> PickupTime | None:
        return next((t for t in self.pickup_times if t.time_id == time_id), None)


class EventSchedule(BaseModel):
    """One dated occurrence of an event."""

    schedule_id: str
    event_date_time: datetime
    pickups: list[EventPickup] = Field(default_factory=list)

    def find_pickup(self, pickup_id: str) -> EventPickup | None:
        return next((p for p in self.pickups if p.pickup_id == pickup_id), None)


class Event(BaseModel):
    """An event with one or more schedules."""

    event_id: str
    name: str
    schedules: list[EventSchedule] = Field(default_factory=list)

    def find_schedule(self, schedule_id: str) -> EventSchedule | None:
        return next((s for s in self.schedules if s.schedule_id == schedule_id), None)


class TourPickup(BaseModel):
    """Hotel pickup for a tour, with its prices and daily pickup time."""

    hotel_id: str
    hotel_name: str | None = None
    adult_price: Money = Field(default=Decimal("0"), ge=0)
    children_price: Money = Field(default=Decimal("0"), ge=0)
    pickup_time: str | None = Field(
        default=None, description="Daily pickup time as HH:MM", examples=["07:45"]
    )


class Tour(BaseModel):
    """A recurring tour. Dates come from its recurrence rule and are not modelled here."""

    tour_id: str
    name: str
    pickups: list[TourPickup] = Field(default_factory=list)

    def find_pickup(self, hotel_id: str) -> TourPickup | None:
        return next((p for p in self.pickups if str(p.hotel_id) == str(hotel_id)), None)


class User(BaseModel):
    """A registered customer or administrator."""

    user_id: str
    email: str
    name: str | None = None
    role: UserRole = UserRole.CUSTOMER
    stripe_customer_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
