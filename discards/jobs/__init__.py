"""Batch entry points."""
