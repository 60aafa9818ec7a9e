"""
API routes.

- sync: discovery, rematch, candidate review, bracket re-sync, run history
"""
