"""Decoded custom attribute values and the per-category attribute records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from winmd_tables.types import Architecture, LazyString, Type


@dataclass(frozen=True)
class ArgumentValue:
    """One decoded attribute argument.

    ``value`` matches the declared type's element kind: ``bool``, ``int``,
    ``float``, a one-character ``str`` for CHAR, and a LazyString (or
    ``None`` for a null string) for STRING.
    """

    type: Type
    name: str | None
    value: Any


@dataclass(frozen=True)
class CustomAttributeValue:
    """Fixed arguments of a custom attribute, in constructor order."""

    fixed_arguments: tuple[ArgumentValue, ...]

    def __len__(self) -> int:
        return len(self.fixed_arguments)

    def __getitem__(self, index: int) -> ArgumentValue:
        return self.fixed_arguments[index]


@dataclass(frozen=True)
class TypeCustomAttributeData:
    """Facts extracted from the attributes of a TypeDef."""

    supported_architecture: Architecture = Architecture.ALL
    documentation_url: LazyString | None = None
    is_typedef: bool = False
    is_enum_flags: bool = False
    struct_size_field: str | None = None
    guid_constant: uuid.UUID | None = None


@dataclass(frozen=True)
class MethodCustomAttributeData:
    """Facts extracted from the attributes of a MethodDef."""

    supported_architecture: Architecture = Architecture.ALL
    documentation_url: LazyString | None = None
    constant_value: Any = None


@dataclass(frozen=True)
class FieldCustomAttributeData:
    """Facts extracted from the attributes of a Field.

    ``is_ansi_encoding`` marks string fields encoded as ANSI (Windows-1252);
    ``is_flexible_array`` marks a trailing variable-length array.
    """

    supported_architecture: Architecture = Architecture.ALL
    documentation_url: LazyString | None = None
    guid_constant: uuid.UUID | None = None
    is_ansi_encoding: bool = False
    is_flexible_array: bool = False
    constant_value: Any = None


@dataclass(frozen=True)
class ParamCustomAttributeData:
    """Facts extracted from the attributes of a Param."""

    associated_enum_type: str | None = None
