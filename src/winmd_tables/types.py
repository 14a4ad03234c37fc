"""Type model for decoded metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag

from winmd_tables.errors import FormatError


class ElementType(Enum):
    """Element type codes used in signatures and attribute blobs (ECMA-335 II.23.1.16)."""

    END = 0x00
    VOID = 0x01
    BOOLEAN = 0x02
    CHAR = 0x03
    I1 = 0x04
    U1 = 0x05
    I2 = 0x06
    U2 = 0x07
    I4 = 0x08
    U4 = 0x09
    I8 = 0x0A
    U8 = 0x0B
    R4 = 0x0C
    R8 = 0x0D
    STRING = 0x0E
    PTR = 0x0F
    BYREF = 0x10
    VALUETYPE = 0x11
    CLASS = 0x12
    VAR = 0x13
    ARRAY = 0x14
    GENERICINST = 0x15
    TYPEDBYREF = 0x16
    I = 0x18
    U = 0x19
    FNPTR = 0x1B
    OBJECT = 0x1C
    SZARRAY = 0x1D
    MVAR = 0x1E
    CMOD_REQD = 0x1F
    CMOD_OPT = 0x20
    SENTINEL = 0x41
    PINNED = 0x45

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_ELEMENT_TYPES


_INTEGER_ELEMENT_TYPES = frozenset(
    {
        ElementType.I1,
        ElementType.U1,
        ElementType.I2,
        ElementType.U2,
        ElementType.I4,
        ElementType.U4,
        ElementType.I8,
        ElementType.U8,
    }
)

# Element types that map to a Primitive
PRIMITIVE_ELEMENT_TYPES = frozenset(
    {
        ElementType.VOID,
        ElementType.BOOLEAN,
        ElementType.CHAR,
        ElementType.I1,
        ElementType.U1,
        ElementType.I2,
        ElementType.U2,
        ElementType.I4,
        ElementType.U4,
        ElementType.I8,
        ElementType.U8,
        ElementType.R4,
        ElementType.R8,
        ElementType.STRING,
        ElementType.I,
        ElementType.U,
        ElementType.OBJECT,
    }
)

# Names of the System types behind each primitive element type
PRIMITIVE_TYPE_NAMES: dict[ElementType, str] = {
    ElementType.VOID: "Void",
    ElementType.BOOLEAN: "Boolean",
    ElementType.CHAR: "Char",
    ElementType.I1: "SByte",
    ElementType.U1: "Byte",
    ElementType.I2: "Int16",
    ElementType.U2: "UInt16",
    ElementType.I4: "Int32",
    ElementType.U4: "UInt32",
    ElementType.I8: "Int64",
    ElementType.U8: "UInt64",
    ElementType.R4: "Single",
    ElementType.R8: "Double",
    ElementType.STRING: "String",
    ElementType.I: "IntPtr",
    ElementType.U: "UIntPtr",
    ElementType.OBJECT: "Object",
}


class Architecture(IntFlag):
    """Processor architectures a declaration is available on."""

    X86 = 1
    X64 = 2
    ARM64 = 4
    ALL = 7


@dataclass(frozen=True)
class QualifiedName:
    """Namespace plus simple name of a type."""

    namespace: str
    name: str

    def __str__(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}.{self.name}"


@dataclass(frozen=True, eq=False)
class LazyString:
    """UTF-8 text inside a backing buffer, decoded only when asked for.

    Holds a reference to the buffer rather than a copy, so the buffer must
    outlive the LazyString (the metadata store keeps it for its lifetime).
    """

    data: bytes | memoryview = field(repr=False)
    offset: int
    length: int

    def decode(self) -> str:
        """Decode the referenced bytes as UTF-8."""
        raw = bytes(self.data[self.offset : self.offset + self.length])
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError(f"Invalid UTF-8 string: {exc.reason}", offset=self.offset + exc.start) from exc

    def __str__(self) -> str:
        return self.decode()

    def __len__(self) -> int:
        return self.length

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LazyString):
            return self.decode() == other.decode()
        if isinstance(other, str):
            return self.decode() == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.decode())


@dataclass(frozen=True)
class Type:
    """Base class for all decoded types."""

    @property
    def display_name(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Primitive(Type):
    """Built-in type identified by its element code."""

    element_type: ElementType

    @property
    def qualified_name(self) -> QualifiedName:
        return QualifiedName("System", PRIMITIVE_TYPE_NAMES[self.element_type])

    @property
    def display_name(self) -> str:
        return str(self.qualified_name)


@dataclass(frozen=True)
class EnumType(Type):
    """Enumeration with its underlying integer type."""

    name: QualifiedName
    base_type: Primitive

    @property
    def display_name(self) -> str:
        return str(self.name)


@dataclass(frozen=True)
class ArrayType(Type):
    """Array of elements; ``length`` is set for fixed-size arrays."""

    element_type: Type
    length: int | None = None

    @property
    def display_name(self) -> str:
        size = "" if self.length is None else str(self.length)
        return f"{self.element_type.display_name}[{size}]"


@dataclass(frozen=True)
class PointerType(Type):
    """Unmanaged pointer to a target type."""

    target: Type

    @property
    def display_name(self) -> str:
        return f"{self.target.display_name}*"


@dataclass(frozen=True)
class TypeReference(Type):
    """Opaque reference to a struct, interface, delegate or class."""

    name: QualifiedName

    @property
    def display_name(self) -> str:
        return str(self.name)
