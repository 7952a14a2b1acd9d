"""Appointments domain - Booking, recurring series and status workflow"""

__all__ = []
