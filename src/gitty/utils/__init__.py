"""Utility helpers for gitty."""
