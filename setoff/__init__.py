"""Allocation (set-off) engine for settlement transactions."""
