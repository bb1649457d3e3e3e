"""Archive extraction into shard directories."""
