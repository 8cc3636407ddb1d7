"""SQLite persistence for the store-backed key source."""
