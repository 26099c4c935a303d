import logging
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis as _redis
from rq import Queue

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()

# Set by init_redis; the API falls back to inline storage when enqueue returns None
redis_client: _redis.Redis = None  # type: ignore
task_queue: Queue = None  # type: ignore


class DummyQueue:
    """Stand-in for the image queue when Redis is unavailable.

    ``enqueue`` returns ``None`` so callers store the image inline instead of
    leaving a pending version that no worker will pick up.
    """

    def enqueue(self, func, *args, **kwargs):
        logger.warning(
            "Image queue disabled, %s for %s will run inline",
            getattr(func, "__name__", func),
            args[0] if args else "?",
        )
        return None


def _disable_queue():
    global redis_client, task_queue
    redis_client = None
    task_queue = DummyQueue()


def init_redis(app):
    """Connect the image job queue named by IMAGE_QUEUE_NAME."""
    global redis_client, task_queue
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not set, image jobs run inline")
        _disable_queue()
        return

    try:
        client = _redis.from_url(redis_url, decode_responses=False)
        client.ping()
    except (_redis.RedisError, ValueError) as e:
        logger.warning("Redis connection failed (%s), image jobs run inline", e)
        _disable_queue()
        return

    redis_client = client
    task_queue = Queue(app.config["IMAGE_QUEUE_NAME"], connection=client)


def init_storage(app):
    """Build the configured blob storage backend once per app."""
    from app.services.storage_service import get_backend

    return get_backend(app)
