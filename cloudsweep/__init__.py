"""Find and delete stale cloud resources by age and name, one resource kind per module."""

__version__ = "0.1.0"