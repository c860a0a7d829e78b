"""Personal task-tracking data layer: entity store, secondary indexes and ad-hoc queries."""

__version__ = "0.1.0"
