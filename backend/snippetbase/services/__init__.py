"""Service layer: the content engine and its background side effects."""
