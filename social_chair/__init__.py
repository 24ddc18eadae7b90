"""
Social Chair session bootstrap.

Resolves who the current user is, which chapter they belong to and what role
they hold, and provisions the profile of first-time users.
"""

__version__ = "0.1.0"
