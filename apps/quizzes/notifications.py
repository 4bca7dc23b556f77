"""Relay of quiz domain events to an external notifier.

Delivery to students and teachers (push, SMS, email) happens in the
notifier service; this module only forwards the events as JSON.
"""
import logging

import requests
from django.conf import settings
from django.dispatch import receiver

from . import events

logger = logging.getLogger(__name__)


def relay_event(event) -> None:
    """POST ``event`` to ``QUIZ_EVENTS_WEBHOOK_URL`` if configured."""
    url = getattr(settings, "QUIZ_EVENTS_WEBHOOK_URL", "")
    if not url:
        logger.debug("Skipping event relay for %s: QUIZ_EVENTS_WEBHOOK_URL missing", event.name)
        return

    timeout = getattr(settings, "QUIZ_EVENTS_WEBHOOK_TIMEOUT", 10)
    try:
        response = requests.post(url, json=events.event_payload(event), timeout=timeout)
        if response.status_code >= 400:
            logger.warning(
                "Event relay returned %s for %s: %s", response.status_code, event.name, response.text
            )
    except requests.RequestException:
        logger.exception("Failed to relay %s", event.name)


@receiver(events.quiz_created)
def relay_quiz_created(sender, event, **kwargs):
    relay_event(event)


@receiver(events.quiz_graded)
def relay_quiz_graded(sender, event, **kwargs):
    relay_event(event)
