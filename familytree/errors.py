"""Domain errors raised by the stores and translated to HTTP responses in main."""


class FamilyTreeError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(FamilyTreeError):
    status_code = 404


class ForbiddenError(FamilyTreeError):
    status_code = 403


class ConflictError(FamilyTreeError):
    status_code = 409


class FetchError(FamilyTreeError):
    """The data store could not be read; the tree view shows an error state."""
    status_code = 503
