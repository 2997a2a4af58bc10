"""Lifecycle event fan-out.

Why This Package Exists
-----------------------
The dashboard stream and the audit log both want to hear about every
record transition, but neither may slow the engine down. The engine emits
:class:`~cadence.core.models.LifecycleEvent` objects into an
:class:`EventEmitter`; observers subscribe to it.

There is no global emitter: the service builds one and hands it to the
scanner, executor and sweeper.

Modules
-------
emitter     EventEmitter -- bounded queue + dispatcher thread
observers   LoggingObserver, LifecycleLogWriter, EventCollector
"""

from cadence.core.events.emitter import EventEmitter, Observer, Subscription
from cadence.core.models import EventType, LifecycleEvent

__all__ = [
    "EventEmitter",
    "EventType",
    "LifecycleEvent",
    "Observer",
    "Subscription",
]
