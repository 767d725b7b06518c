# errors.py
"""Failure taxonomy shared by the core and the HTTP layer.

Each error carries the status code the boundary answers with; the message
becomes the ``{"error": ...}`` body.
"""


class ProxyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadInputError(ProxyError):
    status_code = 400


class UnresolvedError(ProxyError):
    status_code = 404


class NoMatchingFormatError(ProxyError):
    status_code = 422


class UpstreamError(ProxyError):
    status_code = 500
