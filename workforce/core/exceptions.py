class WorkforceError(Exception):
    """Base error for the workforce package."""


class PermissionDeniedError(WorkforceError):
    pass
