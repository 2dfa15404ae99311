"""Tests for the checkout session orchestrator and session store."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from shopware_ucp.exceptions import (
    ConnectorError,
    SessionNotFoundError,
    StateConflictError,
    UCPValidationError,
)
from shopware_ucp.models.session import CheckoutStatus
from shopware_ucp.models.ucp import PaymentData
from shopware_ucp.orchestrator import (
    CheckoutOrchestrator,
    CreateCheckoutRequest,
    negotiate_capabilities,
)
from shopware_ucp.registry import InMemoryHandlerConfigStore, build_registry
from shopware_ucp.store import InMemorySessionStore

from conftest import SHOP_ID, card_payment


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def orchestrator(registry, store, cart_source, settings):
    return CheckoutOrchestrator(registry, store, cart_source, settings)


async def open_session(orchestrator, **kwargs):
    request = CreateCheckoutRequest(shop_id=SHOP_ID, cart_token="cart-token-1", **kwargs)
    result = await orchestrator.create_session(request)
    return result.session


def mock_mollie(orchestrator):
    return orchestrator._registry.get("mollie").connector


class TestCreateSession:
    """Tests for create_session."""

    @pytest.mark.asyncio
    async def test_creates_session_from_cart(self, orchestrator, cart_source):
        session = await open_session(orchestrator, selected_fulfillment_option_id="sm-standard")

        assert session.session_id.startswith("cs_")
        assert session.status is CheckoutStatus.CREATED
        assert session.currency == "EUR"
        assert session.cart.amount == 12495
        assert session.cart.fulfillment.selected_option_id == "sm-standard"
        assert session.capabilities == [
            "dev.ucp.shopping.checkout",
            "dev.ucp.shopping.fulfillment",
            "dev.ucp.shopping.discount",
        ]
        assert cart_source.calls == [f"get_cart:{SHOP_ID}:cart-token-1", f"get_shipping_methods:{SHOP_ID}"]

    @pytest.mark.asyncio
    async def test_invalid_currency(self, orchestrator, cart_source):
        with pytest.raises(UCPValidationError):
            await open_session(orchestrator, currency="EURO")
        assert cart_source.calls == []

    @pytest.mark.asyncio
    async def test_currency_applies_to_every_amount(self, orchestrator):
        session = await open_session(orchestrator, currency="usd")

        assert session.currency == "USD"
        assert {t.currency for t in session.cart.totals} == {"USD"}
        assert {o.currency for o in session.cart.fulfillment.options} == {"USD"}

    @pytest.mark.asyncio
    async def test_pays_when_payment_data_given(self, orchestrator):
        result = await orchestrator.create_session(CreateCheckoutRequest(
            shop_id=SHOP_ID,
            cart_token="cart-token-1",
            payment_data=card_payment("business-tokenizer", token="tok_visa"),
        ))
        assert result.success
        assert result.session.status is CheckoutStatus.SUCCEEDED
        assert result.session.handler_id == "business-tokenizer"

    def test_negotiate_capabilities(self):
        offered = ["dev.ucp.shopping.checkout", "dev.ucp.shopping.fulfillment"]

        assert negotiate_capabilities(offered) == offered
        assert negotiate_capabilities(offered, ["dev.ucp.shopping"]) == offered
        assert negotiate_capabilities(offered, ["dev.ucp.shopping.checkout"]) == ["dev.ucp.shopping.checkout"]
        assert negotiate_capabilities(offered, ["dev.ucp.shopping.order"]) == []


class TestProcessPayment:
    """Tests for process_payment."""

    @pytest.mark.asyncio
    async def test_priority_one_used_without_request(self, orchestrator):
        session = await open_session(orchestrator)

        result = await orchestrator.process_payment(
            session.session_id, PaymentData(type="ideal")
        )

        assert result.session.handler_id == "mollie"
        assert result.session.status is CheckoutStatus.REQUIRES_ACTION
        assert result.session.redirect_url == result.payment.redirect_url
        assert result.session.transaction_id == result.payment.transaction_id
        assert result.to_dict()["session"]["continue_url"] == result.payment.redirect_url

    @pytest.mark.asyncio
    async def test_requested_handler(self, orchestrator):
        session = await open_session(orchestrator)
        result = await orchestrator.process_payment(
            session.session_id, card_payment("google-pay", token="gpay_test_token")
        )
        assert result.session.handler_id == "google-pay"
        assert result.session.status is CheckoutStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_charges_session_total(self, orchestrator):
        session = await open_session(orchestrator)
        connector = orchestrator._registry.get("business-tokenizer").connector
        connector.charge = AsyncMock(wraps=connector.charge)

        await orchestrator.process_payment(session.session_id, card_payment("business-tokenizer"))

        charge = connector.charge.call_args.args[0]
        assert (charge.amount, charge.currency) == (12495, "EUR")

    @pytest.mark.asyncio
    async def test_no_handler_available(self, store, cart_source, settings):
        empty = build_registry(settings, InMemoryHandlerConfigStore())
        orchestrator = CheckoutOrchestrator(empty, store, cart_source, settings)
        session = await open_session(orchestrator)

        result = await orchestrator.process_payment(session.session_id, card_payment("mollie"))

        assert not result.success
        assert result.error_code == "no_handler_available"
        assert result.session.status is CheckoutStatus.CREATED
        assert result.session.last_error.code == "no_handler_available"

    @pytest.mark.asyncio
    async def test_validation_error_keeps_session_open(self, orchestrator):
        session = await open_session(orchestrator)
        result = await orchestrator.process_payment(
            session.session_id, PaymentData(handler_id="business-tokenizer", type="card")
        )

        assert result.payment.error_code == "validation_error"
        assert result.session.status is CheckoutStatus.CREATED

    @pytest.mark.asyncio
    async def test_retry_after_processor_error(self, orchestrator):
        session = await open_session(orchestrator)
        connector = orchestrator._registry.get("business-tokenizer").connector
        original_charge = connector.charge
        connector.charge = AsyncMock(side_effect=ConnectorError("mock request timed out", "mock"))

        first = await orchestrator.process_payment(session.session_id, card_payment("business-tokenizer"))
        assert first.payment.error_code == "mock_error"
        assert first.session.status is CheckoutStatus.CREATED
        assert first.session.last_error.code == "mock_error"

        connector.charge = original_charge
        second = await orchestrator.process_payment(session.session_id, card_payment("business-tokenizer"))
        assert second.session.status is CheckoutStatus.SUCCEEDED
        assert second.session.last_error is None

    @pytest.mark.asyncio
    async def test_decline_fails_session(self, orchestrator):
        session = await open_session(orchestrator)
        result = await orchestrator.process_payment(
            session.session_id, card_payment("business-tokenizer", token="tok_decline")
        )

        assert result.session.status is CheckoutStatus.FAILED
        assert result.session.transaction_id == result.payment.transaction_id
        assert result.session.last_error.code == "payment_failed"

    @pytest.mark.asyncio
    async def test_second_attempt_after_success_is_state_conflict(self, orchestrator):
        session = await open_session(orchestrator)
        await orchestrator.process_payment(session.session_id, card_payment("business-tokenizer"))

        connector = orchestrator._registry.get("business-tokenizer").connector
        connector.charge = AsyncMock()
        result = await orchestrator.process_payment(session.session_id, card_payment("business-tokenizer"))

        assert result.error_code == "state_conflict"
        assert result.session.status is CheckoutStatus.SUCCEEDED
        connector.charge.assert_not_called()

    @pytest.mark.asyncio
    async def test_terminal_session_drops_locks(self, orchestrator, store):
        session = await open_session(orchestrator)
        result = await orchestrator.process_payment(
            session.session_id, card_payment("google-pay", token="gpay_test_token")
        )

        assert result.session.status is CheckoutStatus.SUCCEEDED
        assert session.session_id not in orchestrator._attempt_locks
        assert session.session_id not in store._locks

    @pytest.mark.asyncio
    async def test_unknown_session_leaves_no_lock(self, orchestrator):
        with pytest.raises(SessionNotFoundError):
            await orchestrator.process_payment("cs_missing", card_payment("business-tokenizer"))
        assert "cs_missing" not in orchestrator._attempt_locks

    @pytest.mark.asyncio
    async def test_concurrent_attempts_charge_once(self, orchestrator):
        session = await open_session(orchestrator)
        connector = orchestrator._registry.get("business-tokenizer").connector
        connector.charge = AsyncMock(wraps=connector.charge)

        results = await asyncio.gather(*(
            orchestrator.process_payment(session.session_id, card_payment("business-tokenizer"))
            for _ in range(5)
        ))

        assert connector.charge.call_count == 1
        assert sum(1 for r in results if r.error_code == "state_conflict") == 4

    @pytest.mark.asyncio
    async def test_unknown_session(self, orchestrator):
        with pytest.raises(SessionNotFoundError):
            await orchestrator.process_payment("cs_missing", card_payment("mollie"))


class TestWebhooks:
    """Tests for handle_webhook and reconcile."""

    async def redirect_session(self, orchestrator):
        session = await open_session(orchestrator)
        result = await orchestrator.process_payment(session.session_id, PaymentData(handler_id="mollie", type="ideal"))
        return result.session

    @pytest.mark.asyncio
    async def test_paid_webhook_succeeds_session(self, orchestrator):
        session = await self.redirect_session(orchestrator)
        mock_mollie(orchestrator).complete_payment(session.transaction_id, "paid")

        updated = await orchestrator.handle_webhook("mollie", session.transaction_id)

        assert updated.status is CheckoutStatus.SUCCEEDED
        assert (await orchestrator.get_session(session.session_id)).status is CheckoutStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_late_duplicate_webhook_is_ignored(self, orchestrator):
        session = await self.redirect_session(orchestrator)
        connector = mock_mollie(orchestrator)
        connector.complete_payment(session.transaction_id, "paid")
        first = await orchestrator.handle_webhook("mollie", session.transaction_id)

        connector.complete_payment(session.transaction_id, "expired")
        second = await orchestrator.handle_webhook("mollie", session.transaction_id)

        assert first.status is CheckoutStatus.SUCCEEDED
        assert second.status is CheckoutStatus.SUCCEEDED
        assert second.updated_at == first.updated_at

    @pytest.mark.asyncio
    async def test_settled_webhook_drops_locks(self, orchestrator, store):
        session = await self.redirect_session(orchestrator)
        assert session.session_id in store._locks

        mock_mollie(orchestrator).complete_payment(session.transaction_id, "paid")
        await orchestrator.handle_webhook("mollie", session.transaction_id)

        assert session.session_id not in orchestrator._attempt_locks
        assert session.session_id not in store._locks

    @pytest.mark.asyncio
    async def test_authorized_payment_stays_open(self, orchestrator):
        session = await self.redirect_session(orchestrator)
        mock_mollie(orchestrator).complete_payment(session.transaction_id, "authorized")

        updated = await orchestrator.handle_webhook("mollie", session.transaction_id)
        assert updated.status is CheckoutStatus.REQUIRES_ACTION

    @pytest.mark.asyncio
    async def test_open_payment_leaves_session(self, orchestrator):
        session = await self.redirect_session(orchestrator)
        updated = await orchestrator.handle_webhook("mollie", session.transaction_id)
        assert updated.status is CheckoutStatus.REQUIRES_ACTION

    @pytest.mark.asyncio
    async def test_expired_payment_fails_session(self, orchestrator):
        session = await self.redirect_session(orchestrator)
        mock_mollie(orchestrator).complete_payment(session.transaction_id, "expired")

        updated = await orchestrator.handle_webhook_event("mollie", {"id": session.transaction_id})

        assert updated.status is CheckoutStatus.FAILED
        assert updated.last_error.code == "payment_failed"

    @pytest.mark.asyncio
    async def test_processor_error_leaves_session(self, orchestrator):
        session = await self.redirect_session(orchestrator)
        connector = mock_mollie(orchestrator)
        connector.get_payment = AsyncMock(side_effect=ConnectorError("mollie API error: 503", "mollie", 503))

        updated = await orchestrator.handle_webhook("mollie", session.transaction_id)
        assert updated.status is CheckoutStatus.REQUIRES_ACTION

    @pytest.mark.asyncio
    async def test_unknown_payment(self, orchestrator):
        assert await orchestrator.handle_webhook("mollie", "tr_nobody") is None

    @pytest.mark.asyncio
    async def test_unknown_handler(self, orchestrator):
        with pytest.raises(UCPValidationError):
            await orchestrator.handle_webhook("adyen", "psp_1")

    @pytest.mark.asyncio
    async def test_event_without_id(self, orchestrator):
        with pytest.raises(UCPValidationError):
            await orchestrator.handle_webhook_event("mollie", {})

    @pytest.mark.asyncio
    async def test_concurrent_webhooks_apply_once(self, orchestrator, store):
        session = await self.redirect_session(orchestrator)
        mock_mollie(orchestrator).complete_payment(session.transaction_id, "paid")

        results = await asyncio.gather(*(
            orchestrator.handle_webhook("mollie", session.transaction_id) for _ in range(5)
        ))

        assert all(r.status is CheckoutStatus.SUCCEEDED for r in results)
        assert len({r.updated_at for r in results}) == 1

    @pytest.mark.asyncio
    async def test_reconcile_pending_card_payment(self, orchestrator):
        session = await open_session(orchestrator)
        result = await orchestrator.process_payment(
            session.session_id, card_payment("business-tokenizer", token="tok_pending")
        )
        assert result.session.status is CheckoutStatus.PENDING

        connector = orchestrator._registry.get("business-tokenizer").connector
        connector.complete_payment(result.session.transaction_id, "succeeded")

        reconciled = await orchestrator.reconcile(session.session_id)
        assert reconciled.status is CheckoutStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_reconcile_without_payment(self, orchestrator):
        session = await open_session(orchestrator)
        reconciled = await orchestrator.reconcile(session.session_id)
        assert reconciled.status is CheckoutStatus.CREATED


class TestListPaymentHandlers:
    """Tests for list_payment_handlers."""

    @pytest.mark.asyncio
    async def test_lists_enabled_handlers(self, orchestrator, registry):
        await registry.disable_for_shop(SHOP_ID, "google-pay")
        descriptors = await orchestrator.list_payment_handlers(SHOP_ID)
        assert [d.id for d in descriptors] == ["mollie", "business-tokenizer"]


class TestSessionStore:
    """Tests for InMemorySessionStore."""

    @pytest.mark.asyncio
    async def test_compare_and_set(self, orchestrator, store):
        session = await open_session(orchestrator)

        updated = await store.compare_and_set(
            session.session_id, CheckoutStatus.CREATED, CheckoutStatus.PENDING, transaction_id="tx_1"
        )

        assert updated.status is CheckoutStatus.PENDING
        assert (await store.find_by_transaction_id("tx_1")).session_id == session.session_id

    @pytest.mark.asyncio
    async def test_unexpected_status_conflicts(self, orchestrator, store):
        session = await open_session(orchestrator)
        with pytest.raises(StateConflictError) as exc_info:
            await store.compare_and_set(session.session_id, CheckoutStatus.PENDING, CheckoutStatus.SUCCEEDED)
        assert exc_info.value.current == "created"

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, orchestrator, store):
        session = await open_session(orchestrator)
        await store.compare_and_set(session.session_id, CheckoutStatus.CREATED, CheckoutStatus.SUCCEEDED)

        with pytest.raises(StateConflictError):
            await store.compare_and_set(session.session_id, CheckoutStatus.SUCCEEDED, CheckoutStatus.FAILED)

    @pytest.mark.asyncio
    async def test_currency_is_immutable(self, orchestrator, store):
        session = await open_session(orchestrator)
        with pytest.raises(ValueError):
            await store.compare_and_set(
                session.session_id, CheckoutStatus.CREATED, CheckoutStatus.CREATED, currency="USD"
            )

    @pytest.mark.asyncio
    async def test_returned_sessions_are_copies(self, orchestrator, store):
        session = await open_session(orchestrator)
        session.status = CheckoutStatus.SUCCEEDED
        assert (await store.get(session.session_id)).status is CheckoutStatus.CREATED
        session.cart.line_items.clear()
        session.capabilities.append("dev.ucp.shopping.anything")

        stored = await store.get(session.session_id)
        assert len(stored.cart.line_items) == 1
        assert "dev.ucp.shopping.anything" not in stored.capabilities

    @pytest.mark.asyncio
    async def test_caller_snapshot_is_not_stored(self, orchestrator, store):
        session = await open_session(orchestrator)
        updated = await store.compare_and_set(
            session.session_id, CheckoutStatus.CREATED, CheckoutStatus.PENDING, transaction_id="tr_1"
        )
        updated.cart.totals.clear()

        assert (await store.find_by_transaction_id("tr_1")).cart.totals
