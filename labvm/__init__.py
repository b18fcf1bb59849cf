"""Idempotent lifecycle management for a small libvirt VM lab."""

__version__ = '0.1.0'
