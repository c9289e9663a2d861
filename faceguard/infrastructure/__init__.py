"""Infrastructure adapters (dependency providers)."""
