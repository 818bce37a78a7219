"""Shared helpers for the session store."""
