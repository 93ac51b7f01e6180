"""
Broker Fault Exceptions

Faults reported by Service Bus (entity missing, unauthorized, throttled, lock
lost, connection failure). These abort the current operation and are shown
to the user as a status line; the core never retries them on its own.

The SDK's "no session available" timeout and empty receive batches are NOT
mapped here: they are end-of-data signals handled inside the batching helpers.
"""

from contextlib import contextmanager

from azure.core.exceptions import ClientAuthenticationError, HttpResponseError, ResourceNotFoundError
from azure.servicebus.exceptions import (
    MessageLockLostError as SdkMessageLockLostError,
)
from azure.servicebus.exceptions import (
    MessagingEntityNotFoundError,
    ServiceBusAuthenticationError,
    ServiceBusAuthorizationError,
    ServiceBusCommunicationError,
    ServiceBusConnectionError,
    ServiceBusError,
    ServiceBusQuotaExceededError,
    ServiceBusServerBusyError,
    SessionLockLostError,
)

from buslane.core.exceptions.base import BusLaneError


class BrokerError(BusLaneError):
    """Base exception for faults reported by the broker."""

    reason = "GeneralError"


class EntityNotFoundError(BrokerError):
    """Queue, topic or subscription does not exist (or is not visible)."""

    reason = "MessagingEntityNotFound"


class BrokerUnauthorizedError(BrokerError):
    """Credential rejected or missing the required data-plane role."""

    reason = "Unauthorized"


class BrokerThrottledError(BrokerError):
    """Namespace is busy or a quota was exceeded."""

    reason = "ServiceBusy"


class MessageLockLostError(BrokerError):
    """A message or session lock expired before settlement."""

    reason = "MessageLockLost"


class BrokerConnectionError(BrokerError):
    """The namespace could not be reached."""

    reason = "ServiceCommunicationProblem"


def translate_broker_error(exc: Exception, entity: str | None = None) -> Exception:
    """
    Map an SDK exception onto the BrokerError hierarchy.

    Exceptions that are not broker faults (and BusLaneErrors) are returned
    unchanged so callers can ``raise translate_broker_error(e) from e``
    without losing unexpected failures.

    Args:
        exc: Exception raised by azure-servicebus / azure-core
        entity: Entity path for the error details

    Returns:
        The translated exception (or ``exc`` itself)
    """
    if isinstance(exc, BusLaneError):
        return exc

    details = {"entity": entity} if entity else {}

    if isinstance(exc, (MessagingEntityNotFoundError, ResourceNotFoundError)):
        error_cls = EntityNotFoundError
    elif isinstance(exc, (ServiceBusAuthenticationError, ServiceBusAuthorizationError, ClientAuthenticationError)):
        error_cls = BrokerUnauthorizedError
    elif isinstance(exc, (ServiceBusServerBusyError, ServiceBusQuotaExceededError)):
        error_cls = BrokerThrottledError
    elif isinstance(exc, (SdkMessageLockLostError, SessionLockLostError)):
        error_cls = MessageLockLostError
    elif isinstance(exc, (ServiceBusConnectionError, ServiceBusCommunicationError)):
        error_cls = BrokerConnectionError
    elif isinstance(exc, HttpResponseError) and exc.status_code in (401, 403):
        error_cls = BrokerUnauthorizedError
    elif isinstance(exc, HttpResponseError) and exc.status_code == 429:
        error_cls = BrokerThrottledError
    elif isinstance(exc, ServiceBusError):
        error_cls = BrokerError
    else:
        return exc

    return error_cls.from_exception(exc, **details)


@contextmanager
def broker_errors(entity: str | None = None):
    """
    Re-raise SDK faults raised inside the block as BrokerErrors.

    Usage:
        with broker_errors("orders"):
            await receiver.peek_messages(10)
    """
    try:
        yield
    except Exception as e:
        translated = translate_broker_error(e, entity)
        if translated is e:
            raise
        raise translated from e


def describe_failure(exc: BaseException, entity: str | None = None) -> str:
    """
    Build the human-readable status line for a failed operation.

    Args:
        exc: The failure
        entity: Entity name shown in "not found" messages

    Returns:
        Status text, always prefixed with "Error:"
    """
    translated = translate_broker_error(exc, entity) if isinstance(exc, Exception) else exc

    if isinstance(translated, EntityNotFoundError):
        name = entity or translated.details.get("entity") or "unknown"
        return (
            f"Error: Entity '{name}' not found. "
            "Ensure you have 'Azure Service Bus Data Receiver' role assigned."
        )
    if isinstance(translated, BrokerError):
        return f"Error: {translated.reason} - {translated.message}"
    return f"Error: {exc}"
