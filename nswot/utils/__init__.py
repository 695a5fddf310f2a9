"""Reliability utilities."""
