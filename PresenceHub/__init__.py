"""
PresenceHub Project - real-time presence and direct messaging gateway for
the workforce-management suite.

Authenticated users exchange direct messages, see who is online, see typing
indicators and get read receipts over one persistent WebSocket connection
instead of polling.

"Who is on shift, right now."
"""

__version__ = "1.0.0"
