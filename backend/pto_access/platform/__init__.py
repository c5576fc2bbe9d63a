"""Cross-cutting platform pieces: error taxonomy, upstream calls, access pipeline."""
