"""SQLite storage for the delegate registry."""
