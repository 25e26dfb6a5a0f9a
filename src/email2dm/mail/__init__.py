"""Inbound email parsing."""

from email2dm.mail.normalizer import NormalizedMessage, normalize

__all__ = ["NormalizedMessage", "normalize"]
