"""
Unit tests for Mercado Pago notification parsing.
"""

from app.domain.webhooks import MercadoPagoNotification, ProcessingResult, WebhookStatus


class TestMercadoPagoNotification:

    def test_numeric_ids_are_normalized(self):
        notification = MercadoPagoNotification.from_payload(
            {"id": 12345, "type": "payment", "action": "payment.updated", "data": {"id": 987654}}
        )

        assert notification.id == "12345"
        assert notification.data.id == "987654"
        assert notification.is_valid()

    def test_topic_used_when_type_missing(self):
        notification = MercadoPagoNotification.from_payload(
            {"topic": "payment", "data": {"id": "55"}}
        )
        assert notification.type == "payment"

    def test_missing_data_id_is_invalid(self):
        notification = MercadoPagoNotification.from_payload({"type": "payment", "data": {}})
        assert not notification.is_valid()

    def test_non_dict_data_is_ignored(self):
        notification = MercadoPagoNotification.from_payload({"type": "payment", "data": "x"})
        assert notification.data.id is None
        assert not notification.is_valid()

    def test_merchant_order_only_needs_id(self):
        notification = MercadoPagoNotification.from_payload(
            {"id": "mo-1", "type": "topic_merchant_order_wh"}
        )
        assert notification.is_valid()

    def test_idempotency_key_prefers_event_id(self):
        notification = MercadoPagoNotification.from_payload(
            {"id": 1, "type": "payment", "data": {"id": 2}}
        )
        assert notification.idempotency_key == "mercadopago:1"

    def test_idempotency_key_without_event_id(self):
        notification = MercadoPagoNotification.from_payload(
            {"type": "payment", "action": "payment.created", "data": {"id": 2}}
        )
        assert notification.idempotency_key == "mercadopago:payment:2:payment.created"


class TestProcessingResult:

    def test_constructors(self):
        processed = ProcessingResult.processed("Order updated", record_id="abc")
        ignored = ProcessingResult.ignored("Unknown reference")

        assert processed.status == WebhookStatus.PROCESSED
        assert processed.record_id == "abc"
        assert ignored.status == WebhookStatus.IGNORED
        assert ignored.record_id is None
