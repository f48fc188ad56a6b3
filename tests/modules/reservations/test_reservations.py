"""Tests for Reservations module."""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.models import UserRole
from src.core.config import settings
from src.core.exceptions import (
    AlreadyTerminalError,
    ConflictError,
    DuplicateReservationError,
    ExceedsReservationCapError,
    NotFoundError,
    ValidationError,
)
from src.modules.listings.service import ListingService
from src.modules.reservations.models import DepositStatus
from src.modules.reservations.service import (
    ReservationService,
    backoff_delay,
    reservation_cap,
)
from src.shared.utils.time import utcnow


class TestReservationCap:
    """Tests for the 85%-of-available cap."""

    def test_cap_values(self):
        assert reservation_cap(100) == 85
        assert reservation_cap(15) == 12
        assert reservation_cap(7) == 5
        assert reservation_cap(1) == 0
        assert reservation_cap(0) == 0

    def test_custom_ratio(self):
        assert reservation_cap(10, Decimal("0.5")) == 5

    def test_backoff_is_bounded(self):
        assert backoff_delay(1) == 0.05
        assert backoff_delay(2) == 0.1
        assert backoff_delay(3) == 0.2
        assert backoff_delay(10) == 0.2


class TestReservationService:
    """Tests for ReservationService."""

    async def test_reserve_takes_deposit_and_holds_portions(
        self, db_session: AsyncSession, make_listing
    ):
        listing = await make_listing(vendor_id=1, total_portions=10)
        service = ReservationService(db_session)

        reservation = await service.reserve(listing.id, organisation_id=50, portions=4)

        assert reservation.portions_reserved == 4
        assert reservation.deposit_amount == Decimal("50.00")
        assert reservation.deposit_status == DepositStatus.PAID.value
        assert reservation.collected is False

        fresh = await ListingService(db_session).get_by_id(listing.id)
        assert fresh.reserved_portions == 4
        assert fresh.remaining_portions == 10

    async def test_cap_scenario(self, db_session: AsyncSession, make_listing):
        listing = await make_listing(vendor_id=1, total_portions=100)
        service = ReservationService(db_session)

        with pytest.raises(ExceedsReservationCapError) as exc_info:
            await service.reserve(listing.id, organisation_id=50, portions=86)
        assert exc_info.value.details["cap"] == 85

        await service.reserve(listing.id, organisation_id=50, portions=85)
        fresh = await ListingService(db_session).get_by_id(listing.id)
        assert fresh.reserved_portions == 85

        with pytest.raises(ExceedsReservationCapError) as exc_info:
            await service.reserve(listing.id, organisation_id=51, portions=13)
        assert exc_info.value.details == {"requested": 13, "cap": 12, "available": 15}

        await service.reserve(listing.id, organisation_id=52, portions=1)
        fresh = await ListingService(db_session).get_by_id(listing.id)
        assert fresh.reserved_portions == 86
        assert fresh.remaining_portions == 100

    async def test_single_portion_listing_cannot_be_reserved(
        self, db_session: AsyncSession, make_listing
    ):
        listing = await make_listing(vendor_id=1, total_portions=1)

        with pytest.raises(ExceedsReservationCapError):
            await ReservationService(db_session).reserve(listing.id, 50, 1)

    async def test_duplicate_open_reservation(self, db_session: AsyncSession, make_listing):
        listing = await make_listing(vendor_id=1, total_portions=20)
        service = ReservationService(db_session)
        await service.reserve(listing.id, organisation_id=50, portions=2)

        with pytest.raises(DuplicateReservationError):
            await service.reserve(listing.id, organisation_id=50, portions=2)

        fresh = await ListingService(db_session).get_by_id(listing.id)
        assert fresh.reserved_portions == 2

    async def test_reserve_again_after_collection(
        self, db_session: AsyncSession, make_listing
    ):
        listing = await make_listing(vendor_id=1, total_portions=20)
        service = ReservationService(db_session)
        first = await service.reserve(listing.id, organisation_id=50, portions=5)
        await service.mark_collected(first.id, 50, listing.id)
        await db_session.commit()

        second = await service.reserve(listing.id, organisation_id=50, portions=3)

        assert second.id != first.id
        fresh = await ListingService(db_session).get_by_id(listing.id)
        assert fresh.remaining_portions == 15
        assert fresh.reserved_portions == 3

    async def test_reserve_during_priority_window(self, db_session: AsyncSession, make_listing):
        listing = await make_listing(vendor_id=1, total_portions=10, priority_requested=True)

        reservation = await ReservationService(db_session).reserve(listing.id, 50, 5)
        assert reservation.portions_reserved == 5

    async def test_reserve_on_terminal_listing(self, db_session: AsyncSession, make_listing):
        listing = await make_listing(vendor_id=1)
        await ListingService(db_session).cancel_listing(listing.id, vendor_id=1)

        with pytest.raises(AlreadyTerminalError):
            await ReservationService(db_session).reserve(listing.id, 50, 1)

    async def test_reserve_past_best_before(self, db_session: AsyncSession, make_listing):
        earlier = utcnow() - timedelta(hours=2)
        listing = await make_listing(
            vendor_id=1, now=earlier, best_before=earlier + timedelta(hours=1)
        )

        # Still active until the expiry sweep runs, but no longer reservable
        with pytest.raises(AlreadyTerminalError) as exc_info:
            await ReservationService(db_session).reserve(listing.id, 50, 1)
        assert exc_info.value.details == {"status": "expired"}

    async def test_reserve_unknown_listing(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await ReservationService(db_session).reserve(999, 50, 1)

    async def test_reserve_zero_portions(self, db_session: AsyncSession, make_listing):
        listing = await make_listing(vendor_id=1)
        with pytest.raises(ValidationError):
            await ReservationService(db_session).reserve(listing.id, 50, 0)

    async def test_lost_race_is_retried(
        self, db_session: AsyncSession, make_listing, monkeypatch
    ):
        listing = await make_listing(vendor_id=1, total_portions=10)
        monkeypatch.setattr(settings, "conflict_backoff_base_ms", 0)
        original = ListingService.hold_portions
        versions: list[int] = []

        async def flaky_hold(self, listing_id, portions, expected_version):
            versions.append(expected_version)
            if len(versions) == 1:
                return False
            return await original(self, listing_id, portions, expected_version)

        monkeypatch.setattr(ListingService, "hold_portions", flaky_hold)

        reservation = await ReservationService(db_session).reserve(listing.id, 50, 3)

        assert len(versions) == 2
        assert reservation.portions_reserved == 3

    async def test_conflict_after_max_attempts(
        self, db_session: AsyncSession, make_listing, monkeypatch
    ):
        listing = await make_listing(vendor_id=1, total_portions=10)
        monkeypatch.setattr(settings, "conflict_backoff_base_ms", 0)
        monkeypatch.setattr(settings, "conflict_backoff_max_ms", 0)
        attempts: list[int] = []

        async def always_stale(self, listing_id, portions, expected_version):
            attempts.append(expected_version)
            return False

        monkeypatch.setattr(ListingService, "hold_portions", always_stale)

        with pytest.raises(ConflictError):
            await ReservationService(db_session).reserve(listing.id, 50, 3)

        assert len(attempts) == settings.conflict_max_attempts
        fresh = await ListingService(db_session).get_by_id(listing.id)
        assert fresh.reserved_portions == 0

    async def test_list_reservations(self, db_session: AsyncSession, make_listing):
        first = await make_listing(vendor_id=1, total_portions=10)
        second = await make_listing(vendor_id=2, total_portions=10)
        service = ReservationService(db_session)
        await service.reserve(first.id, 50, 2)
        await service.reserve(second.id, 50, 2)
        await service.reserve(first.id, 51, 2)

        mine, total = await service.list_reservations(organisation_id=50)
        on_first, _ = await service.list_reservations(listing_id=first.id)

        assert total == 2
        assert {r.listing_id for r in mine} == {first.id, second.id}
        assert {r.organisation_id for r in on_first} == {50, 51}


class TestReservationsAPI:
    """Reservation endpoints."""

    async def test_organisation_reserves(
        self, client: AsyncClient, auth_headers, make_listing
    ):
        listing = await make_listing(vendor_id=1, total_portions=10)

        response = await client.post(
            "/api/v1/reservations",
            json={"listing_id": listing.id, "portions": 5},
            headers=auth_headers(50, UserRole.CHARITABLE_ORGANISATION),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Reservation successful! Deposit paid."
        assert body["data"]["portions_reserved"] == 5
        assert body["data"]["deposit_status"] == "paid"
        assert Decimal(body["data"]["deposit_amount"]) == Decimal("50.00")

    async def test_cap_violation_body(self, client: AsyncClient, auth_headers, make_listing):
        listing = await make_listing(vendor_id=1, total_portions=10)

        response = await client.post(
            "/api/v1/reservations",
            json={"listing_id": listing.id, "portions": 9},
            headers=auth_headers(50, UserRole.CHARITABLE_ORGANISATION),
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "EXCEEDS_RESERVATION_CAP"
        assert body["message"] == "You can only reserve up to 8 portions (10 available)"

    async def test_consumer_cannot_reserve(self, client: AsyncClient, auth_headers, make_listing):
        listing = await make_listing(vendor_id=1)

        response = await client.post(
            "/api/v1/reservations",
            json={"listing_id": listing.id, "portions": 1},
            headers=auth_headers(2, UserRole.CONSUMER),
        )
        assert response.status_code == 403

    async def test_other_organisation_cannot_read_reservation(
        self, client: AsyncClient, auth_headers, make_listing, db_session: AsyncSession
    ):
        listing = await make_listing(vendor_id=1)
        reservation = await ReservationService(db_session).reserve(listing.id, 50, 2)

        own = await client.get(
            f"/api/v1/reservations/{reservation.id}",
            headers=auth_headers(50, UserRole.CHARITABLE_ORGANISATION),
        )
        other = await client.get(
            f"/api/v1/reservations/{reservation.id}",
            headers=auth_headers(51, UserRole.CHARITABLE_ORGANISATION),
        )

        assert own.status_code == 200
        assert other.status_code == 404

    async def test_vendor_sees_listing_reservations(
        self, client: AsyncClient, auth_headers, make_listing, db_session: AsyncSession
    ):
        listing = await make_listing(vendor_id=1)
        await ReservationService(db_session).reserve(listing.id, 50, 2)

        owner = await client.get(
            f"/api/v1/listings/{listing.id}/reservations",
            headers=auth_headers(1, UserRole.VENDOR),
        )
        stranger = await client.get(
            f"/api/v1/listings/{listing.id}/reservations",
            headers=auth_headers(2, UserRole.VENDOR),
        )

        assert owner.status_code == 200
        assert [r["organisation_id"] for r in owner.json()["data"]] == [50]
        assert stranger.status_code == 403
