"""Search, ranking and link-graph services."""
