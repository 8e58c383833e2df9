"""Fossil catalog web service."""
