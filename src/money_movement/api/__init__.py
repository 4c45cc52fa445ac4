"""Sandbox processor HTTP service."""
