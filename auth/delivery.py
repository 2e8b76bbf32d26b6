"""
auth/delivery.py -- Out-of-band delivery of password reset codes.

CredentialResetService takes a CodeDelivery callable and hands it the raw
code exactly once. Email/SMS transports live outside this package; the
default LogCodeDelivery writes the code to the "folioauth.delivery" logger,
which is the development channel. Never enable it in production.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("folioauth.delivery")


class CodeDelivery(Protocol):
    def __call__(self, email: str, code: str, expires_in_minutes: int) -> None: ...


class LogCodeDelivery:
    """Development delivery: emit the code on the delivery logger."""

    def __call__(self, email: str, code: str, expires_in_minutes: int) -> None:
        logger.info("Password reset code for %s: %s (expires in %d minutes)", email, code, expires_in_minutes)
