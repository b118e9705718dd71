"""Bookings app package.

This app encapsulates the booking lifecycle: creating bookings on top of
slot ledger holds, confirming them when payment succeeds, compensating
when payment fails or arrives too late, and the owner-side actions.
"""
