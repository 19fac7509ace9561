"""
dramatiq worker entry point.

     dramatiq workers.tasks --queues billing maintenance-reminders

Importing this module builds the process's ServiceContainer, which declares
one actor per job type on the redis broker. The scheduler is started paused
here: workers may add or remove registrations (reminder escalation does) but
only the API process fires them.
"""
import logging

from config import Settings
from services.container import build_container

settings = Settings.from_env()
logging.basicConfig(
     level=getattr(logging, settings.log_level.upper(), logging.INFO),
     format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

container = build_container(settings)
broker = container.queue.broker
container.queue.start(paused=True)
