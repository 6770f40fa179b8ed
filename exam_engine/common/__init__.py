"""
Cross-cutting utilities: logging, errors, clock, shuffling, locking, identity.
"""
