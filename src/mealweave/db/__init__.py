"""SQLite storage for caches and the variety bank."""
