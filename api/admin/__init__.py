"""Operator-only API endpoints."""
