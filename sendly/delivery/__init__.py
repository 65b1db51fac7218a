from sendly.delivery.client import (
    DeliveryError,
    DeliveryReceipt,
    DeliveryRejectedError,
    DeliveryUnavailableError,
    EmailClient,
    ResendEmailClient,
)

__all__ = [
    "DeliveryError",
    "DeliveryReceipt",
    "DeliveryRejectedError",
    "DeliveryUnavailableError",
    "EmailClient",
    "ResendEmailClient",
]
