"""
Dramatiq worker infrastructure for background recalculation.

Sets up the Redis broker shared by all worker modules. Import this before
defining actors.
"""
import dramatiq
from dramatiq.brokers.redis import RedisBroker

from correlator.config import settings

redis_broker = RedisBroker(url=settings.redis_url)
dramatiq.set_broker(redis_broker)
