"""
Shopify global ids.

The Admin GraphQL API identifies every object with a composite string such as
``gid://shopify/Product/632910392``. The REST API and our tables use the
trailing numeric id. ShopifyGID converts between the two and validates the
format at the API boundary.
"""

import re

from pydantic import BaseModel, ConfigDict

GID_PREFIX = "gid://shopify/"

_GID_PATTERN = re.compile(r"^gid://shopify/(?P<resource>[A-Za-z]+)/(?P<id>\d+)(?:\?.*)?$")


class InvalidGIDError(ValueError):
    """Raised when a string is not a well-formed Shopify global id."""


class ShopifyGID(BaseModel):
    """A parsed Shopify global id: resource type plus numeric id."""

    model_config = ConfigDict(frozen=True)

    resource: str
    id: int

    @classmethod
    def parse(cls, value: str, resource: str | None = None) -> "ShopifyGID":
        """
        Parse a global id string.

        Args:
            value: String like "gid://shopify/ProductVariant/123"
            resource: Expected resource type; a mismatch is rejected

        Raises:
            InvalidGIDError: If the value is malformed or of another resource
        """
        if not isinstance(value, str):
            raise InvalidGIDError(f"Global id must be a string, got {type(value).__name__}")

        match = _GID_PATTERN.match(value)
        if not match:
            raise InvalidGIDError(f"Malformed Shopify global id: {value!r}")

        gid = cls(resource=match.group("resource"), id=int(match.group("id")))
        if resource is not None and gid.resource != resource:
            raise InvalidGIDError(f"Expected a {resource} global id, got {value!r}")
        return gid

    @classmethod
    def build(cls, resource: str, id: int | str) -> "ShopifyGID":
        """Build a global id from a REST numeric id."""
        return cls(resource=resource, id=int(id))

    def __str__(self) -> str:
        return f"{GID_PREFIX}{self.resource}/{self.id}"


def gid_to_id(value: str, resource: str | None = None) -> int:
    """Return the numeric id of a global id string."""
    return ShopifyGID.parse(value, resource).id
