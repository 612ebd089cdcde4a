"""Celery tasks for match negotiation background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def sweep_expired_matches_task():
    """
    Periodic task (Celery beat) that expires open matches past their
    expiry instant and notifies both fleets.
    """
    from services.negotiation import MatchNegotiationEngine

    try:
        expired = MatchNegotiationEngine().sweep_expired()
    except Exception as e:
        logger.error(f"Error sweeping expired matches: {e}")
        raise

    logger.info(f"Match expiry sweep finished: {expired} expired")
    return expired
