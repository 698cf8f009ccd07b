"""observability/ — structlog setup shared by every bgtasks module."""
