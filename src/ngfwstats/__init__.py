"""Firewall, connection and threat analytics engine."""

__version__ = "0.1.0"
