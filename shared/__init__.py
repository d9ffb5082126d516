"""Shared utilities used across the janitor package."""
