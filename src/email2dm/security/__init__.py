"""
Security module for email2dm.

Provides connection admission control by source network.
"""

from email2dm.security.network import AdmissionCheck, NetworkFilter, parse_networks

__all__ = ["AdmissionCheck", "NetworkFilter", "parse_networks"]
