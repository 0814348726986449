"""Order Facts: read-only order fact aggregation and governance."""
