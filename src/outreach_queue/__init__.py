"""Background task queue for delegated outreach and research jobs."""

__version__ = "0.1.0"
