class DuplicateError(ValueError):
    """A unique field (email, category name or slug) is already taken."""
