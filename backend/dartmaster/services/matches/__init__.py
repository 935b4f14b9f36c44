"""Match domain services: dart scoring and result confirmation.

This package holds the match logic shared by HTTP routes and socket
handlers, keeping transport concerns separated from scoring rules.
"""
