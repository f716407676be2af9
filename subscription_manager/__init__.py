"""Subscription lifecycle service: creation, cancellation and prorated refunds."""

__version__ = "0.1.0"
