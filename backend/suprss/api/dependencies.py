"""
Shared FastAPI dependencies.
"""

from suprss.services.scheduler import FeedPollScheduler, scheduler


def get_poller() -> FeedPollScheduler:
    """The running poll scheduler; its client is reused for on-demand fetches."""
    return scheduler
