"""One-shot job that seeds the employee collection."""
