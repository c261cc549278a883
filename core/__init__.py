"""Core services: metrics and role-based access control."""
