"""Shared record sync for the Koha expense and gift tracker."""

__version__ = "0.1.0"
