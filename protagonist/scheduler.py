import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .exceptions import GenerationFailed, NotFoundError, StateError
from .services import Services

logger = logging.getLogger(__name__)


async def deliver_daily_episodes(services: Services) -> int:
    """Generate today's episode for every active arc; returns how many were produced."""
    arcs = services.repository.list_active_arcs()
    logger.info("Daily delivery: %d active arcs", len(arcs))

    delivered = 0
    for arc in arcs:
        user = services.repository.get_user(arc.user_id)
        if user is None:
            logger.warning("Arc %s belongs to unknown user %s; skipping", arc.id, arc.user_id)
            continue
        try:
            result = await services.orchestrator.generate_episode(arc.id, arc.current_day, user)
        except (StateError, NotFoundError) as e:
            logger.info("Skipping arc %s: %s", arc.id, e)
            continue
        except GenerationFailed as e:
            logger.error("Arc %s day %d failed: %s", arc.id, arc.current_day, e)
            continue
        if not result.reused:
            delivered += 1

    logger.info("Daily delivery finished: %d new episodes", delivered)
    return delivered


def create_scheduler(services: Services, cron_expression: str = None) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        deliver_daily_episodes,
        CronTrigger.from_crontab(cron_expression or services.settings.episode_schedule),
        args=[services],
        id="daily_episode_delivery",
        name="Generate the current day's episode for active arcs",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    return scheduler
