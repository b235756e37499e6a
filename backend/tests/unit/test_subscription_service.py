"""
Unit tests for SubscriptionService checkout and lifecycle actions.
"""

from unittest.mock import AsyncMock

import pytest

from app.domain.orders import CustomerData
from app.domain.subscription import (
    CreateSubscriptionRequest,
    SubscriptionAction,
    generate_subscription_reference,
)
from app.infrastructure.db.models.unified_subscription import UnifiedSubscription
from app.infrastructure.exceptions import DuplicateError, ValidationError
from app.infrastructure.services.subscription_service import SubscriptionService


@pytest.fixture
def service(mock_session, mock_mercadopago, mock_stripe, sample_product):
    service = SubscriptionService(mock_session, mock_mercadopago, mock_stripe)
    service.products = AsyncMock()
    service.products.get_by_id.return_value = sample_product
    service.subscriptions = AsyncMock()
    service.subscriptions.get_by_external_reference.return_value = None

    async def add(subscription):
        subscription.id = 42
        return subscription

    service.subscriptions.add.side_effect = add
    service.subscriptions.apply.side_effect = lambda subscription, changes: subscription
    mock_mercadopago.create_preference.return_value = {
        "id": "pref-sub", "init_point": "https://mp/checkout/sub"
    }
    return service


@pytest.fixture
def request_body(sample_customer):
    return CreateSubscriptionRequest(
        product_id=7,
        subscription_type="monthly",
        quantity=2,
        customer=CustomerData(**sample_customer),
    )


class TestStartCheckout:

    @pytest.mark.asyncio
    async def test_creates_pending_subscription(
        self, service, request_body, mock_user_id, mock_mercadopago
    ):
        response = await service.start_checkout(mock_user_id, request_body)

        reference = generate_subscription_reference(str(mock_user_id), 7)
        assert response.subscription_id == "42"
        assert response.external_reference == reference
        assert response.preference_id == "pref-sub"

        subscription = service.subscriptions.add.await_args.args[0]
        assert subscription.status == "pending"
        assert subscription.discount_percentage == 10.0
        assert subscription.discounted_price == 405.0
        assert subscription.transaction_amount == 810.0
        assert subscription.frequency == 1
        assert subscription.frequency_type == "months"

        kwargs = mock_mercadopago.create_preference.await_args.kwargs
        assert kwargs["external_reference"] == reference
        assert kwargs["metadata"] == {
            "is_subscription": True,
            "first_payment": True,
            "subscription_id": 42,
        }
        assert kwargs["items"][0]["unit_price"] == 405.0

    @pytest.mark.asyncio
    async def test_reuses_pending_row(self, service, request_body, mock_user_id, pending_subscription):
        service.subscriptions.get_by_external_reference.return_value = pending_subscription

        response = await service.start_checkout(mock_user_id, request_body)

        assert response.subscription_id == "42"
        service.subscriptions.add.assert_not_awaited()
        service.subscriptions.apply.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_blocks_duplicate_active(self, service, request_body, mock_user_id, pending_subscription):
        pending_subscription.status = "active"
        service.subscriptions.get_by_external_reference.return_value = pending_subscription

        with pytest.raises(DuplicateError):
            await service.start_checkout(mock_user_id, request_body)

    @pytest.mark.asyncio
    async def test_cancelled_gets_fresh_reference(
        self, service, request_body, mock_user_id, pending_subscription
    ):
        pending_subscription.status = "cancelled"
        service.subscriptions.get_by_external_reference.side_effect = [pending_subscription, None]

        response = await service.start_checkout(mock_user_id, request_body)

        assert response.external_reference == generate_subscription_reference(
            str(mock_user_id), 7, "renew:42"
        )
        service.subscriptions.add.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_every_resubscription_gets_its_own_row(
        self, service, request_body, mock_user_id, mock_mercadopago
    ):
        rows = {}
        ids = iter([42, 43, 44])

        async def add(subscription):
            subscription.id = next(ids)
            rows[subscription.external_reference] = subscription
            return subscription

        service.subscriptions.add.side_effect = add
        service.subscriptions.get_by_external_reference.side_effect = rows.get

        responses = []
        for _ in range(3):
            response = await service.start_checkout(mock_user_id, request_body)
            responses.append(response)
            rows[response.external_reference].status = "cancelled"

        assert [r.subscription_id for r in responses] == ["42", "43", "44"]
        assert responses[2].external_reference == generate_subscription_reference(
            str(mock_user_id), 7, "renew:43"
        )
        assert len({r.external_reference for r in responses}) == 3
        assert service.subscriptions.add.await_count == 3
        service.subscriptions.apply.assert_not_awaited()

        preference_refs = [
            call.kwargs["external_reference"]
            for call in mock_mercadopago.create_preference.await_args_list
        ]
        assert preference_refs == [r.external_reference for r in responses]

    @pytest.mark.asyncio
    async def test_third_checkout_after_two_cancellations_is_pending(
        self, service, request_body, mock_user_id, pending_subscription
    ):
        pending_subscription.status = "cancelled"
        renewal = UnifiedSubscription(
            id=43,
            user_id=mock_user_id,
            product_id=7,
            status="cancelled",
            external_reference=generate_subscription_reference(str(mock_user_id), 7, "renew:42"),
        )
        service.subscriptions.get_by_external_reference.side_effect = [
            pending_subscription, renewal, None
        ]

        response = await service.start_checkout(mock_user_id, request_body)

        created = service.subscriptions.add.await_args.args[0]
        assert created.status == "pending"
        assert response.external_reference == generate_subscription_reference(
            str(mock_user_id), 7, "renew:43"
        )

    @pytest.mark.asyncio
    async def test_product_without_subscriptions(self, service, request_body, mock_user_id, sample_product):
        sample_product.subscription_available = False

        with pytest.raises(ValidationError, match="does not offer subscriptions"):
            await service.start_checkout(mock_user_id, request_body)

    @pytest.mark.asyncio
    async def test_unknown_product(self, service, request_body, mock_user_id):
        service.products.get_by_id.return_value = None

        with pytest.raises(ValidationError, match="not available"):
            await service.start_checkout(mock_user_id, request_body)


class TestLifecycleActions:

    @pytest.mark.asyncio
    async def test_pause_mercadopago_subscription(self, service, mock_mercadopago, pending_subscription):
        pending_subscription.status = "active"
        pending_subscription.mercadopago_subscription_id = "pre-1"

        await service.apply_action(pending_subscription, SubscriptionAction.PAUSE)

        mock_mercadopago.update_preapproval_status.assert_awaited_once_with("pre-1", "paused")
        assert service.subscriptions.apply.await_args.args[1]["status"] == "paused"

    @pytest.mark.asyncio
    async def test_cancel_stripe_subscription(self, service, mock_stripe, pending_subscription):
        pending_subscription.status = "active"
        pending_subscription.stripe_subscription_id = "sub_1"

        await service.apply_action(pending_subscription, SubscriptionAction.CANCEL)

        mock_stripe.cancel_subscription.assert_awaited_once_with("sub_1")
        changes = service.subscriptions.apply.await_args.args[1]
        assert changes["status"] == "cancelled"
        assert "canceled_at" in changes

    @pytest.mark.asyncio
    async def test_resume_stripe_subscription(self, service, mock_stripe, pending_subscription):
        pending_subscription.status = "paused"
        pending_subscription.stripe_subscription_id = "sub_1"

        await service.apply_action(pending_subscription, SubscriptionAction.RESUME)

        mock_stripe.set_paused.assert_awaited_once_with("sub_1", paused=False)

    @pytest.mark.asyncio
    async def test_invalid_transition(self, service, mock_mercadopago, pending_subscription):
        with pytest.raises(ValidationError, match="Cannot resume"):
            await service.apply_action(pending_subscription, SubscriptionAction.RESUME)
        mock_mercadopago.update_preapproval_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_metrics(service):
    service.subscriptions.count_by_status.return_value = {"active": 3, "cancelled": 1}
    service.subscriptions.active_revenue.return_value = 1215.004

    metrics = await service.metrics()

    assert metrics["total"] == 4
    assert metrics["by_status"]["active"] == 3
    assert metrics["by_status"]["paused"] == 0
    assert metrics["active_revenue"] == 1215.0


def test_subscription_model_defaults():
    subscription = UnifiedSubscription(external_reference="SUB-x")
    assert subscription.status == "pending"
    assert subscription.charges_made == 0
