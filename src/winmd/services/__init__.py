"""Service layer helpers (settings, persistence, storage)."""
