from __future__ import annotations

import threading


class CancelToken:
    """Set by the owner of a screen/request when its result is no longer wanted.

    Operations check the token after their network call and skip committing
    state once it is set.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def is_cancelled(token: CancelToken | None) -> bool:
    return token is not None and token.cancelled
