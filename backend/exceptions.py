class OrganMatchError(Exception):
    """Base class for OrganConnect matching errors"""


class InvalidRecordError(OrganMatchError, ValueError):
    """A donor or request record carries a value the matcher cannot use"""


class InvalidConfigurationError(OrganMatchError, ValueError):
    """Matching configuration field is unknown or out of range"""


class RequestNotFoundError(OrganMatchError, LookupError):
    def __init__(self, request_id):
        super().__init__(f"Organ request {request_id} not found")
        self.request_id = request_id


class InvalidStatusTransitionError(OrganMatchError):
    def __init__(self, request_id, current, target):
        super().__init__(
            f"Organ request {request_id} is {current}; cannot move to {target}"
        )
        self.request_id = request_id
        self.current = current
        self.target = target
