"""Shared helpers for cohortmill tests."""
