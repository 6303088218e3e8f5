"""Summary-progress aggregation for hierarchical Gantt task trees."""

__version__ = "0.1.0"
