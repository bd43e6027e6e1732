class NotFoundError(ValueError):
    """The requested entity does not exist at all."""


class ForbiddenError(ValueError):
    """The entity exists but belongs to another user, or its state forbids the operation."""


class InvalidFilterError(ValueError):
    """A filter or query value could not be interpreted."""
