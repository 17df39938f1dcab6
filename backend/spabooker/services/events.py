"""
backend/spabooker/services/events.py

Event emitter: pushes booking events to a Redis queue for the
notification consumers (e-mail, calendar sync).

Queue:
- events:p2p: instant delivery (booking notifications to specific users)
"""

import json
import time
import logging

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(event_type: str, payload: dict) -> None:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop. A failed push
    is logged and does not undo the booking change that triggered it.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis_client.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")


def booking_payload(booking) -> dict:
    """Fields the consumers need to render a booking notification."""
    return {
        "booking_id": booking.id,
        "client_id": booking.client_id,
        "service_id": booking.service_id,
        "therapist_id": booking.therapist_id,
        "room_id": booking.room_id,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "status": booking.status.value,
    }
