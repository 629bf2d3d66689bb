"""
Notification hook for workflow milestones.

The lifecycle services register ``dispatch`` calls as after-commit hooks,
so delivery happens outside the transaction and a delivery failure can
never roll back a transition.  Event names are ``<resource>.<action>``
(``invoice.approve``, ``contract.created``).
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from workforce_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Fire-and-forget delivery of a milestone event."""

    def dispatch(self, event: str, payload: Mapping[str, Any]) -> None: ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records the event in the structured log."""

    def dispatch(self, event: str, payload: Mapping[str, Any]) -> None:
        logger.info(
            "notification_dispatched",
            extra={"event": event, "payload": dict(payload)},
        )


def notification_hook(
    dispatcher: NotificationDispatcher,
    event: str,
    payload: Mapping[str, Any],
):
    """Bind a dispatch call for ``UnitOfWork.on_commit``."""
    frozen = dict(payload)

    def _dispatch() -> None:
        dispatcher.dispatch(event, frozen)

    _dispatch.__name__ = f"notify:{event}"
    return _dispatch
