"""Infrastructure layer - configuration, persistence and external adapters."""
