"""Backend selection, connectivity fallback and migration between backends."""
