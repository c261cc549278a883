"""Third-party client factories."""
