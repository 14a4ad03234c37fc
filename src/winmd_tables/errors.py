"""Error taxonomy for metadata decoding."""

from __future__ import annotations


class MetadataError(ValueError):
    """Base class for all decoding failures.

    Carries optional context that is folded into the message: the byte
    offset where decoding failed, the entity being decoded (e.g.
    ``TypeDef[3]``) and the qualified name of the attribute involved.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: int | None = None,
        entity: str | None = None,
        attribute: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.offset = offset
        self.entity = entity
        self.attribute = attribute

    def add_context(self, *, entity: str | None = None, attribute: str | None = None) -> None:
        """Fill in entity/attribute context without overwriting existing values."""
        if self.entity is None:
            self.entity = entity
        if self.attribute is None:
            self.attribute = attribute

    def __str__(self) -> str:
        parts = [self.message]
        if self.entity is not None:
            parts.append(f"entity={self.entity}")
        if self.attribute is not None:
            parts.append(f"attribute={self.attribute}")
        if self.offset is not None:
            parts.append(f"offset=0x{self.offset:x}")
        if len(parts) == 1:
            return self.message
        return f"{self.message} ({', '.join(parts[1:])})"


class FormatError(MetadataError):
    """Malformed or unexpected binary shape."""


class UnknownAttributeError(MetadataError):
    """A non-ignored custom attribute with no registered extractor."""


class UnsupportedFeatureError(MetadataError):
    """A valid encoding this library deliberately does not decode."""
