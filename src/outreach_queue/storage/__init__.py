"""Durable storage for the task queue."""
