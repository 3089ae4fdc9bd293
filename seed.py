"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 sample riders and 1 admin (password: ``password123``)
  - 8 sample rides (mix of upcoming, pending_payment, paid, completed,
    cancelled)
  - a "Ride confirmed" notification for every paid or completed ride
"""

import asyncio
from datetime import date, time, timedelta

from sqlalchemy import func, select

from src.domain.enums import NotificationType, RideStatus
from src.domain.pricing import fare_for_vehicle, format_amount, to_major_units
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import (
    NotificationModel,
    RideModel,
    UserModel,
    utcnow,
)
from src.infrastructure.security import hash_password

DEMO_PASSWORD = "password123"

USERS = [
    {"full_name": "Aarav Sharma", "email": "aarav@example.com", "phone": "+91 98200 00001"},
    {"full_name": "Priya Patel", "email": "priya@example.com", "phone": "+91 98200 00002"},
    {"full_name": "Rohan Mehta", "email": "rohan@example.com", "phone": None},
    {"full_name": "Ops Desk", "email": "admin@example.com", "phone": None, "is_admin": True},
]

# (user index, pickup, drop, days from today, vehicle, passengers, status)
RIDES = [
    (0, "Acme HQ, Lower Parel", "Mumbai Airport T2", 3, "sedan", 1, RideStatus.UPCOMING),
    (0, "Acme HQ, Lower Parel", "BKC Client Office", 5, "suv", 3, RideStatus.PENDING_PAYMENT),
    (0, "Mumbai Airport T2", "Acme HQ, Lower Parel", -4, "luxury", 1, RideStatus.COMPLETED),
    (1, "Andheri East", "Powai Tech Park", 1, "van", 6, RideStatus.PAID),
    (1, "Powai Tech Park", "Andheri East", -2, "sedan", 1, RideStatus.CANCELLED),
    (1, "Bandra West", "Mumbai Airport T1", 7, "suv", 2, RideStatus.UPCOMING),
    (2, "Dadar", "Nariman Point", -1, "sedan", 1, RideStatus.COMPLETED),
    (2, "Nariman Point", "Dadar", 2, "luxury", 2, RideStatus.PAID),
]

SETTLED = {RideStatus.PAID, RideStatus.COMPLETED}


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        count = await session.scalar(select(func.count()).select_from(UserModel))
        if count:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        password_hash = hash_password(DEMO_PASSWORD)
        user_models = []
        for u in USERS:
            m = UserModel(
                email=u["email"],
                password_hash=password_hash,
                full_name=u["full_name"],
                phone=u["phone"],
                is_admin=u.get("is_admin", False),
            )
            session.add(m)
            user_models.append(m)
        await session.flush()
        print(f"  Created {len(user_models)} users")

        # ── Rides ─────────────────────────────────────────────────────
        today = date.today()
        notes = 0
        for idx, pickup, drop, days, vehicle, passengers, status in RIDES:
            user = user_models[idx]
            fare = fare_for_vehicle(vehicle)
            settled = status in SETTLED
            ride = RideModel(
                user_id=user.id,
                pickup_location=pickup,
                drop_location=drop,
                date=today + timedelta(days=days),
                time=time(9, 30),
                vehicle_type=vehicle,
                passengers=passengers,
                status=status,
                amount=to_major_units(fare) if settled else None,
                payment_date=utcnow() if settled else None,
            )
            session.add(ride)
            await session.flush()

            if settled:
                session.add(
                    NotificationModel(
                        user_id=user.id,
                        title="Ride confirmed",
                        message=(
                            f"Your {vehicle} ride from {pickup} to {drop} is "
                            f"paid ({format_amount(fare)})."
                        ),
                        type=NotificationType.RIDE_CONFIRMED.value,
                        related_ride_id=ride.id,
                    )
                )
                notes += 1
        await session.flush()
        print(f"  Created {len(RIDES)} rides")
        print(f"  Created {notes} notifications")

        await session.commit()
        print(f"\nSeed complete! Sign in with any seeded email / {DEMO_PASSWORD}")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
