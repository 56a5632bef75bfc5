from .slot_routes import router as slot_routes
from .trash_routes import router as trash_routes
from .exchange_routes import router as exchange_routes
from .notification_routes import router as notification_routes

__all__ = [
    'slot_routes',
    'trash_routes',
    'exchange_routes',
    'notification_routes'
]
