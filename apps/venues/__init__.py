"""Venues app: sports venues, their bookable components and the catalog
read by the booking engine."""
