"""Operational scripts for the portal access service."""
