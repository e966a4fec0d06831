from .message.protocol import Event, EventType, InboundEventType

__all__ = ['Event', 'EventType', 'InboundEventType']
