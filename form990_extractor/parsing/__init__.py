"""XML flattening engine."""
