"""Helpers shared by the execution engine."""
