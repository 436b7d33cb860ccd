"""reconciler — Scheduled cleanup of dangling relationship and progress records."""
