"""Shared helpers for time handling and list pagination."""
