from fastapi import BackgroundTasks, Request

from app.realtime.events import EventBuffer
from app.realtime.hub import BroadcastHub
from app.services.notifications import PushNotifier

def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub

def get_notifier(request: Request) -> PushNotifier:
    return request.app.state.notifier

def get_events() -> EventBuffer:
    return EventBuffer()

def publish(background_tasks: BackgroundTasks, hub: BroadcastHub, events: EventBuffer) -> None:
    """Hand committed events to the hub after the response is sent."""
    pending = events.drain()
    if pending:
        background_tasks.add_task(hub.publish, pending)
