"""Accounts — user account backend.

Registration, login with paired access/refresh tokens, token rotation,
password change, and profile media (avatar and cover image) for a
single user record per account.
"""

__version__ = "0.1.0"
