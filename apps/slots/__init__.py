"""Slot ledger app.

Holds on (facility, date, time range) are the single source of truth for
court availability. Overlap is prevented by a UNIQUE index on the minute
cells each live hold covers, so concurrent acquisitions are serialized by
the database rather than by application-level checks.
"""
