"""matchfeed — candidate feed and mutual-like reconciliation for a swipe-style dating app."""

__version__ = "0.3.0"
