"""
Tests for outbox message types.
"""

from datetime import UTC, datetime

from txmsg.types import MessageOptions, OutboxMessage, SendState, TxHeader


class TestOutboxMessage:
    def test_defaults(self):
        message = OutboxMessage(target="orders", routing_key="order.created", payload=b"{}")

        assert message.id == ""
        assert message.state == SendState.PREPARING
        assert message.curr_retry_times == 0
        assert message.max_retry_times is None
        assert message.next_retry_time is None
        assert message.cause is None
        assert message.headers == {}
        assert message.create_time.tzinfo is not None

    def test_str_payload_is_encoded(self):
        message = OutboxMessage(target="orders", routing_key="rk", payload='{"a": "é"}')

        assert message.payload == '{"a": "é"}'.encode()

    def test_biz_tag(self):
        message = OutboxMessage(
            target="orders", routing_key="rk", payload=b"{}", biz_type="order", biz_key="42"
        )

        assert message.biz_tag == "order_42"

    def test_apply_options_fills_only_unset(self):
        message = OutboxMessage(
            target="orders", routing_key="rk", payload=b"{}", max_retry_times=9
        )

        message.apply_options(MessageOptions(max_retry_times=1, backoff_init_interval=250))

        assert message.max_retry_times == 9
        assert message.backoff_init_interval == 250
        assert message.backoff_multiplier == 2.0
        assert message.backoff_max_interval == 60000

    def test_outbox_headers(self):
        message = OutboxMessage(
            id="m1",
            target="orders",
            routing_key="rk",
            payload=b"{}",
            biz_type="order",
            biz_key="42",
            headers={"trace_id": "t-1"},
        )

        assert message.outbox_headers() == {
            "trace_id": "t-1",
            "TX_MSG_ID": "m1",
            "TX_MSG_BIZ_TYPE": "order",
            "TX_MSG_BIZ_KEY": "42",
        }

    def test_outbox_headers_override_caller_headers(self):
        message = OutboxMessage(
            id="m1",
            target="orders",
            routing_key="rk",
            payload=b"{}",
            headers={TxHeader.MSG_ID.value: "spoofed"},
        )

        headers = message.outbox_headers()

        assert headers[TxHeader.MSG_ID.value] == "m1"
        assert headers[TxHeader.BIZ_TYPE.value] == ""

    def test_dict_conversion(self):
        created = datetime(2024, 1, 1, tzinfo=UTC)
        message = OutboxMessage(
            id="m1",
            target="orders",
            routing_key="rk",
            payload=b'{"x": 1}',
            state=SendState.FAIL,
            curr_retry_times=2,
            max_retry_times=5,
            next_retry_time=created,
            cause="boom",
            create_time=created,
        )

        data = message.to_dict()
        assert data["state"] == "FAIL"
        assert data["payload"] == '{"x": 1}'
        assert data["next_retry_time"] == created.isoformat()

        restored = OutboxMessage.from_dict(data)
        assert restored.id == "m1"
        assert restored.state == SendState.FAIL
        assert restored.payload == b'{"x": 1}'
        assert restored.curr_retry_times == 2
        assert restored.next_retry_time == created
        assert restored.create_time == created


class TestSendState:
    def test_values_match_store_encoding(self):
        assert {s.value for s in SendState} == {"PREPARING", "FAIL", "OVER"}

    def test_tx_headers(self):
        assert TxHeader.MSG_ID.value == "TX_MSG_ID"
        assert TxHeader.BIZ_TYPE.value == "TX_MSG_BIZ_TYPE"
        assert TxHeader.BIZ_KEY.value == "TX_MSG_BIZ_KEY"
