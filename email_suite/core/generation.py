"""
Request generation counter used to drop stale responses.
"""


class RequestGeneration:
    """
    Monotonically increasing token issued per request.

    A caller takes a token before awaiting a gateway call and only applies
    the response if the token is still current afterwards.
    """

    def __init__(self):
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def next(self) -> int:
        """Supersede every outstanding request and return the new token."""
        self._value += 1
        return self._value

    def is_current(self, token: int) -> bool:
        return token == self._value
