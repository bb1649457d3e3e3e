"""Output header definition and row materialization."""
