"""Flox backend: referral codes and subscription provisioning."""

__version__ = "1.0.0"
