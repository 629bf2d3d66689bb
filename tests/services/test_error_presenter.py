"""User-facing error mapping and the notification hook."""

from workforce_kernel.exceptions import (
    ConflictRetryable,
    ForbiddenError,
    GateNotSatisfiedError,
    InvalidTransitionError,
    RateLimitExceeded,
    RecordNotFoundError,
    TransactionTimeoutError,
    ValidationError,
)
from workforce_kernel.logging_config import LogContext
from workforce_services.error_presenter import GENERIC_MESSAGE, present_error
from workforce_services.notifications import LoggingNotificationDispatcher, notification_hook


class TestPresentError:
    def test_forbidden_and_missing_look_identical(self):
        forbidden = present_error(ForbiddenError("invoice.view", entity_id="abc"))
        missing = present_error(RecordNotFoundError("Invoice", "abc"))
        assert forbidden == missing
        assert forbidden.code == "RECORD_NOT_FOUND"

    def test_rate_limit_carries_retry_after(self):
        shown = present_error(RateLimitExceeded("auth:u1", 5, 42))
        assert shown.retry_after_seconds == 42
        assert "42 seconds" in shown.message

    def test_gate_uses_its_description(self):
        shown = present_error(
            GateNotSatisfiedError("counterpart_assigned", "An agency participant is attached")
        )
        assert shown.code == "GATE_NOT_SATISFIED"
        assert "An agency participant is attached" in shown.message

    def test_invalid_transition_names_both_states(self):
        shown = present_error(InvalidTransitionError("invoice", "draft", "sent"))
        assert "'draft'" in shown.message and "'sent'" in shown.message

    def test_validation_message_passes_through(self):
        assert present_error(ValidationError("Rate cannot be negative")).message == (
            "Rate cannot be negative"
        )

    def test_conflict_asks_for_reload(self):
        shown = present_error(ConflictRetryable("Invoice", "abc", "draft"))
        assert shown.code == "CONFLICT_RETRYABLE"

    def test_timeout_keeps_correlation_id(self):
        LogContext.set(correlation_id="req-7")
        shown = present_error(TransactionTimeoutError(10.0))
        assert shown.correlation_id == "req-7"

    def test_unexpected_error_is_generic_and_logged(self, captured_logs):
        LogContext.set(correlation_id="req-9")
        shown = present_error(KeyError("secret_column"))

        assert shown.code == "INTERNAL_ERROR"
        assert shown.message == GENERIC_MESSAGE
        assert "secret_column" not in shown.message
        assert shown.correlation_id == "req-9"
        assert any(r["message"] == "unexpected_error_presented" for r in captured_logs())


class TestNotificationHook:
    def test_payload_is_copied_when_bound(self):
        seen = []

        class Recorder:
            def dispatch(self, event, payload):
                seen.append((event, payload))

        payload = {"invoice_id": "abc"}
        hook = notification_hook(Recorder(), "invoice.send", payload)
        payload["invoice_id"] = "changed"
        hook()

        assert seen == [("invoice.send", {"invoice_id": "abc"})]
        assert hook.__name__ == "notify:invoice.send"

    def test_logging_dispatcher(self, captured_logs):
        LoggingNotificationDispatcher().dispatch("contract.created", {"contract_id": "c1"})
        record = next(r for r in captured_logs() if r["message"] == "notification_dispatched")
        assert record["event"] == "contract.created"
        assert record["payload"] == {"contract_id": "c1"}
