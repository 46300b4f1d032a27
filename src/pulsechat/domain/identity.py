"""Verified caller identity."""

from pydantic import BaseModel, ConfigDict


class Identity(BaseModel):
    """Identity asserted by the identity provider.

    Only ever constructed from an already verified source (the trusted gateway
    header in the HTTP layer, or directly in tests).

    Attributes:
        subject: Stable external subject id issued by the identity provider.
    """

    model_config = ConfigDict(frozen=True)

    subject: str
