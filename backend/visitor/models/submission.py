"""
Request body model for POST /submit.
"""

from typing import Optional, Union

from pydantic import BaseModel


class Submission(BaseModel):
    """
    A visitor capture sent by the landing page.

    ``image`` is either a remote URL or a ``data:<mime>;base64,<payload>`` URI.
    It is optional at the model level so that a missing image can be reported
    with the dedicated 400 message instead of a generic validation error.
    ``time`` is whatever the client sent, an ISO string or an epoch number.
    Unknown fields sent by older clients are ignored.
    """

    model_config = {"extra": "ignore"}

    image: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    time: Optional[Union[str, int, float]] = None

    def has_image(self) -> bool:
        return bool(self.image)
