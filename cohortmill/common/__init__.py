"""Shared helpers used across cohortmill packages."""
