"""Scanner, process supervision and persistence services."""
