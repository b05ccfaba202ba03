"""
The interpreter's operand stack.

Items are shared by reference once pushed. Typed pop helpers request a
specific variant and raise a domain error instead of handing back an
untyped item.
"""

from typing import Iterator, List

from .values import (
    StackItem, Primitive, Parameter, Distribution, Variable,
    ARRAY_MARKER,
)
from ..errors import error_stack_underflow, error_type_mismatch


class Stack:
    """LIFO container of StackItems."""

    def __init__(self):
        self._items: List[StackItem] = []

    def push(self, item: StackItem) -> None:
        if not isinstance(item, StackItem):
            raise TypeError(f"cannot push {type(item).__name__} onto the stack")
        self._items.append(item)

    def require(self, n: int) -> None:
        """Fail with an underflow error unless at least n items are present."""
        if len(self._items) < n:
            raise error_stack_underflow(n, len(self._items))

    def pop(self) -> StackItem:
        self.require(1)
        return self._items.pop()

    def pop_numeric(self) -> Primitive:
        """Pop a numeric Primitive (integer or double)."""
        self.require(1)
        item = self._items[-1]
        if not (isinstance(item, Primitive) and item.is_numeric()):
            raise error_type_mismatch("number", item.describe())
        return self._items.pop()

    def pop_string(self) -> str:
        """Pop a string Primitive and return its text."""
        self.require(1)
        item = self._items[-1]
        if not (isinstance(item, Primitive) and item.is_string()):
            raise error_type_mismatch("string", item.describe())
        return self._items.pop().raw

    def pop_parameter(self) -> Parameter:
        """Pop a Primitive or Variable."""
        self.require(1)
        item = self._items[-1]
        if not isinstance(item, Parameter):
            raise error_type_mismatch("parameter (primitive or variable)", item.describe())
        return self._items.pop()

    def pop_numeric_parameter(self) -> Parameter:
        """Pop a Variable or a numeric Primitive."""
        self.require(1)
        item = self._items[-1]
        if isinstance(item, Primitive) and not item.is_numeric():
            raise error_type_mismatch("number", item.describe())
        return self.pop_parameter()

    def pop_array_parameter(self) -> Parameter:
        """Pop a Variable or an array Primitive."""
        self.require(1)
        item = self._items[-1]
        if isinstance(item, Primitive) and not item.is_array():
            raise error_type_mismatch("array", item.describe())
        return self.pop_parameter()

    def pop_index(self) -> int:
        """Pop a non-fractional numeric index."""
        item = self.pop_numeric()
        if not float(item.raw).is_integer():
            self._items.append(item)
            raise error_type_mismatch("integer index", repr(item.raw))
        return int(item.raw)

    def peek(self, depth: int = 0) -> StackItem:
        """Return the item depth positions below the top without removing it."""
        self.require(depth + 1)
        return self._items[-1 - depth]

    def size(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def clear(self) -> None:
        self._items.clear()

    def items(self) -> List[StackItem]:
        """Snapshot of the stack, bottom first."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[StackItem]:
        return iter(list(self._items))

    def __str__(self) -> str:
        parts = []
        for item in self._items:
            if isinstance(item, Variable):
                parts.append(f"<{item.name}>")
            elif isinstance(item, Distribution):
                parts.append(f"<{item.kind.value}>")
            elif item is ARRAY_MARKER:
                parts.append("[")
            else:
                parts.append(str(item))
        return "[" + ", ".join(parts) + "]"


def duplicate(item: StackItem) -> StackItem:
    """Copy semantics for dup/over/tuck/pick: fresh Primitive, shared otherwise."""
    if isinstance(item, Primitive):
        return item.copy()
    return item
