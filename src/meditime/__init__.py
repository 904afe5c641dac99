"""
meditime - medication reminders delivered as push notifications.

Users and their medications live in a local record store. ``meditime run``
schedules one cron job per medication and, at each matching instant, sends
an acknowledgement-required push notification to every device the
medication names.
"""

__version__ = "0.1.0"
