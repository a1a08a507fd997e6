"""
BetScope - Identity Service

Accounts, cookie-carried access tokens, multi-device sessions, refresh
token rotation and device trust for the BetScope prediction platform.
"""

__version__ = "0.1.0"
