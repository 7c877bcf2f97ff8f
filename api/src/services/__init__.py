"""Business logic services.

Authentication, the client-side settings store, and the notification feed.
"""
