"""Quiz domain services: scoring, player records, leaderboard mirror.

This package contains the domain logic imported by HTTP routes, socket
handlers and CLI commands, keeping transport concerns separated from
core quiz mechanics.
"""
