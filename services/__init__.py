"""Slot reservation core: lock, book, pay, verify."""
