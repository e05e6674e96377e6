"""Infrastructure layer - Configuration, logging and SQL persistence."""
