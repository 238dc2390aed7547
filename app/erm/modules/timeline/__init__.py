"""Activity timeline: human-readable history per entity."""
