"""Exception hierarchy for the resource manager.

Batch operations (uploads, cascades) never raise these for a single failed
item; they are collected into the operation's result instead. Validation
errors are raised before any store call is issued.
"""


class ResourceError(Exception):
    """Base exception for resource manager errors"""
    pass


class ResourceValidationError(ResourceError):
    """The request was rejected before touching any store"""
    pass


class CycleError(ResourceValidationError):
    """A folder cannot be moved into itself or one of its descendants"""

    def __init__(self, path: str, destination: str):
        self.path = path
        self.destination = destination
        super().__init__(f"Cannot move '{path}' into its own subtree '{destination}'")


class ResourceNotFoundError(ResourceError):
    def __init__(self, course_id: str, path: str):
        self.course_id = course_id
        self.path = path
        super().__init__(f"Resource not found: {course_id}/{path}")


class TransientStoreError(ResourceError):
    """A network or service failure on a single record or blob"""
    pass


class RecordStoreError(TransientStoreError):
    pass


class BlobStoreError(TransientStoreError):
    pass
