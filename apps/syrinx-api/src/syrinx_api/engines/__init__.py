"""Concrete synthesis backends."""
