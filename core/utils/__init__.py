# core/utils/__init__.py

from core.utils.money import (
    currency_exponent,
    to_minor_units,
    percentage_of_minor,
)
from core.utils.notifications import (
    send_websocket_notification,
    notify_payout_operators,
)

__all__ = [
    # Money
    'currency_exponent',
    'to_minor_units',
    'percentage_of_minor',
    # Notifications
    'send_websocket_notification',
    'notify_payout_operators',
]
