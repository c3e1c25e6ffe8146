"""Adapters for external programs (NAMD)."""
