"""SQLite persistence: schema migrations, position store, import and export."""
