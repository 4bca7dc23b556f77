from rest_framework import exceptions, status


class InvalidState(exceptions.APIException):
    """The submission is not in a state that allows the operation."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Submission is not in a state that allows this operation."
    default_code = "invalid_state"
