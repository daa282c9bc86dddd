"""Background workers package."""
