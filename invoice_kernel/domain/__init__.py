"""Pure domain layer: value model, tax bucketing, invoice state, clock."""
