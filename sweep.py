"""
One pass of trash maintenance, meant to be run by cron or a similar timer:

    0 6 * * * cd /srv/slotswap && slotswap-sweep

Sends expiring-soon advisories, then destroys slots whose recovery period is over.
"""
import asyncio
import logging

from config import LOG_LEVEL
from dataBase import store as default_store
from notification_service import StoreNotificationSink
from retention_service import RetentionManager
from store import Store
from utils import utcnow

logger = logging.getLogger(__name__)


async def run_sweep(store: Store = default_store, clock=utcnow) -> dict:
    retention = RetentionManager(store, StoreNotificationSink(store, clock), clock)
    notified = await retention.notify_expiring_soon()
    purged = await retention.purge_expired()
    logger.info(f"Sweep finished: {notified} expiring-soon notices, {len(purged)} slots purged")
    return {"notified": notified, "purged": purged}


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    asyncio.run(run_sweep())


if __name__ == "__main__":
    main()
