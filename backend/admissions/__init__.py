"""Student access-number lifecycle (allocation, release, dropped pool, repair)."""
