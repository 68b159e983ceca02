"""Memory subsystems."""
