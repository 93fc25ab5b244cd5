"""Unit tests for OrderService against the in-memory Supabase fake."""

from datetime import datetime, timezone

import pytest

from drip_checkout.api.middleware.error_handler import NotFoundError, StateConflictError
from drip_checkout.services.order_service import MAX_TRANSITION_ATTEMPTS, OrderService
from tests.fakes import FakeSupabase, seed_order


@pytest.fixture
def order_service(fake_db: FakeSupabase) -> OrderService:
    return OrderService()


class TestCreateOrder:
    """Tests for create_order."""

    @pytest.mark.asyncio
    async def test_creates_pending_order_with_items(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test that the order and its item snapshots land in one insert."""
        items = [
            {
                "product_id": 1,
                "product_title": "Drip Tee",
                "product_handle": "drip-tee",
                "main_image": None,
                "quantity": 2,
                "unit_price": "20.00",
                "selected_size": "M",
                "selected_color": "Black",
                "variant_sku": "TEE-M-BLK",
            }
        ]

        order = await order_service.create_order(
            {"customer_name": "Ada", "customer_email": "ada@example.com", "currency": "EUR", "total": "40.00"},
            items,
        )

        assert order["status"] == "PENDING"
        assert order["payment_status"] == "PENDING"
        assert order["stripe_session_id"] is None
        assert order["line_items"] == items
        assert fake_db.executed.count(("orders", "insert")) == 1


class TestReads:
    """Tests for order lookups."""

    @pytest.mark.asyncio
    async def test_get_minimal_has_no_pii(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test that the minimal view carries status fields only."""
        order = seed_order(fake_db)

        minimal = await order_service.get_minimal(order["id"])

        assert set(minimal) == {"id", "total", "currency", "status", "payment_status", "created_at"}

    @pytest.mark.asyncio
    async def test_non_uuid_id_is_not_found(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test that malformed ids never reach the database."""
        assert await order_service.get_minimal("not-a-uuid") is None
        assert await order_service.get_order("42") is None
        assert fake_db.executed == []

    @pytest.mark.asyncio
    async def test_require_order_raises_not_found(self, order_service: OrderService) -> None:
        with pytest.raises(NotFoundError):
            await order_service.require_order("00000000-0000-0000-0000-000000000000")

    @pytest.mark.asyncio
    async def test_get_order_by_session(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test fallback correlation through the stored session id."""
        order = seed_order(fake_db, stripe_session_id="cs_test_abc")

        found = await order_service.get_order_by_session("cs_test_abc")

        assert found["id"] == order["id"]
        assert await order_service.get_order_by_session("cs_test_other") is None

    @pytest.mark.asyncio
    async def test_list_orders_filters_and_sorts(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test status filters and newest-first ordering."""
        older = seed_order(fake_db, created_at="2026-01-01T00:00:00+00:00", payment_status="PAID", status="PROCESSING")
        newer = seed_order(fake_db, created_at="2026-02-01T00:00:00+00:00", payment_status="PAID", status="PROCESSING")
        seed_order(fake_db, created_at="2026-03-01T00:00:00+00:00")

        orders = await order_service.list_orders(payment_status="PAID")

        assert [o["id"] for o in orders] == [newer["id"], older["id"]]

    @pytest.mark.asyncio
    async def test_pending_lists_split_on_session(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test that the session filter applies before the limit."""
        for day in (1, 2, 3):
            seed_order(fake_db, created_at=f"2026-01-0{day}T00:00:00+00:00")
        sessioned = seed_order(fake_db, created_at="2026-01-04T00:00:00+00:00", stripe_session_id="cs_1")

        with_session = await order_service.list_pending_with_session(datetime(2025, 12, 1, tzinfo=timezone.utc), 1)
        without = await order_service.list_pending_without_session(datetime(2026, 1, 3, tzinfo=timezone.utc), 10)

        assert [o["id"] for o in with_session] == [sessioned["id"]]
        assert [o["created_at"][:10] for o in without] == ["2026-01-01", "2026-01-02"]


class TestTransitions:
    """Tests for update_status, mark_paid and cancel_if_pending."""

    @pytest.mark.asyncio
    async def test_mark_paid_is_idempotent(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test that a second payment confirmation is a no-op."""
        order = seed_order(fake_db)

        first = await order_service.mark_paid(order["id"], session_ref="cs_1", payment_intent_id="pi_1")
        second = await order_service.mark_paid(order["id"], session_ref="cs_1", payment_intent_id="pi_1")

        assert first.changed is True
        assert first.confirmed_payment is True
        assert second.changed is False
        assert second.confirmed_payment is False
        stored = fake_db.row("orders", order["id"])
        assert stored["status"] == "PROCESSING"
        assert stored["payment_status"] == "PAID"
        assert stored["stripe_payment_intent_id"] == "pi_1"
        assert stored["paid_at"] is not None

    @pytest.mark.asyncio
    async def test_paid_at_written_with_the_state_change(
        self, order_service: OrderService, fake_db: FakeSupabase
    ) -> None:
        """Test that confirmation is a single conditional write."""
        order = seed_order(fake_db)

        await order_service.mark_paid(order["id"])

        assert fake_db.executed.count(("orders", "update")) == 1
        assert fake_db.row("orders", order["id"])["paid_at"] is not None

    @pytest.mark.asyncio
    async def test_admin_mark_paid_confirms_payment(
        self, order_service: OrderService, fake_db: FakeSupabase
    ) -> None:
        """Test that PATCH-style paymentStatus=PAID moves the order on like a webhook does."""
        order = seed_order(fake_db)

        result = await order_service.update_status(order["id"], payment_status="PAID")

        assert result.confirmed_payment is True
        stored = fake_db.row("orders", order["id"])
        assert (stored["status"], stored["payment_status"]) == ("PROCESSING", "PAID")
        assert stored["paid_at"] is not None

    @pytest.mark.asyncio
    async def test_admin_cannot_repay_refunded_order(
        self, order_service: OrderService, fake_db: FakeSupabase
    ) -> None:
        order = seed_order(fake_db, status="CANCELLED", payment_status="REFUNDED")

        with pytest.raises(StateConflictError):
            await order_service.update_status(order["id"], payment_status="PAID")

    @pytest.mark.asyncio
    async def test_lost_race_is_replanned(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test that a concurrent confirmation makes this writer a no-op."""
        order = seed_order(fake_db)

        def other_writer_confirms(db: FakeSupabase) -> None:
            db.row("orders", order["id"]).update({"status": "PROCESSING", "payment_status": "PAID"})

        fake_db.before_next_update("orders", other_writer_confirms)
        result = await order_service.mark_paid(order["id"])

        assert result.changed is False
        assert result.confirmed_payment is False
        assert fake_db.row("orders", order["id"])["payment_status"] == "PAID"

    @pytest.mark.asyncio
    async def test_expiry_after_payment_keeps_order_paid(
        self, order_service: OrderService, fake_db: FakeSupabase
    ) -> None:
        """Test that a racing expiry cannot cancel an order paid in between."""
        order = seed_order(fake_db)

        def payment_lands(db: FakeSupabase) -> None:
            db.row("orders", order["id"]).update({"status": "PROCESSING", "payment_status": "PAID"})

        fake_db.before_next_update("orders", payment_lands)
        result = await order_service.cancel_if_pending(order["id"])

        assert result.changed is False
        stored = fake_db.row("orders", order["id"])
        assert (stored["status"], stored["payment_status"]) == ("PROCESSING", "PAID")

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_contention(
        self, order_service: OrderService, fake_db: FakeSupabase
    ) -> None:
        """Test that endless concurrent writes end in StateConflictError."""
        order = seed_order(fake_db)

        def flip(db: FakeSupabase) -> None:
            row = db.row("orders", order["id"])
            row["payment_status"] = "PAID" if row["payment_status"] == "PENDING" else "PENDING"
            db.before_next_update("orders", flip)

        fake_db.before_next_update("orders", flip)
        with pytest.raises(StateConflictError):
            await order_service.update_status(order["id"], status="PROCESSING")

        assert fake_db.executed.count(("orders", "update")) == MAX_TRANSITION_ATTEMPTS

    @pytest.mark.asyncio
    async def test_admin_cannot_unpay(self, order_service: OrderService, fake_db: FakeSupabase) -> None:
        """Test that PAID -> PENDING is refused and nothing is written."""
        order = seed_order(fake_db, status="PROCESSING", payment_status="PAID")

        with pytest.raises(StateConflictError):
            await order_service.update_status(order["id"], payment_status="PENDING")

        assert ("orders", "update") not in fake_db.executed

    @pytest.mark.asyncio
    async def test_session_ref_recorded_without_state_change(
        self, order_service: OrderService, fake_db: FakeSupabase
    ) -> None:
        """Test that storing a session id alone leaves state as is."""
        order = seed_order(fake_db)

        result = await order_service.update_status(order["id"], session_ref="cs_test_new")

        assert result.changed is False
        assert fake_db.row("orders", order["id"])["stripe_session_id"] == "cs_test_new"
        assert fake_db.row("orders", order["id"])["status"] == "PENDING"
