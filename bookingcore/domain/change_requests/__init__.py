"""Change requests domain - Client reschedule/cancel requests and provider decisions"""

__all__ = []
