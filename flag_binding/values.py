'''
the repeatable flag values, each occurrence of the flag adds one element to the field.
'''
from typing import Any, Callable

from .exceptions import MalformedMapEntryError
from .types import FieldRef, FlagValue


def split_map_entry(token: str):
    '''
        Split a `key=value` token at the first "=".

        A value containing "=" is kept whole, so "a=1=2" gives ("a", "1=2").

        Raises:
        - `MalformedMapEntryError`: if there is no "=" or either side is empty.
    '''
    key, sep, value = token.partition('=')
    if not sep or not key or not value:
        raise MalformedMapEntryError('key and value must both be non-empty')
    return key, value


class ListValue(FlagValue):
    '''
        Appends one converted element per occurrence of the flag to a list field.

        Parameters:
        - ref (`FieldRef`): the list field. A field holding `None` is set to a new empty list.
        - convert (`Callable`, optional): converts each token to an element, `str` by default.

        Example:
        ```python
        value = ListValue(FieldRef(options, 'ports'), convert=parse_int)
        value.parse('80')
        value.parse('443')
        assert options.ports == [80, 443]
        ```
    '''

    def __init__(self, ref: FieldRef, convert: Callable[[str], Any] = str) -> None:
        if ref.get() is None:
            ref.set([])
        self.ref = ref
        self.convert = convert

    def parse(self, token: str) -> None:
        self.ref.get().append(self.convert(token))

    def render(self) -> str:
        return ''


class MapValue(FlagValue):
    '''
        Inserts one `key=value` entry per occurrence of the flag into a dict field.

        A later entry for the same key replaces the earlier one.

        Parameters:
        - ref (`FieldRef`): the dict field. A field holding `None` is set to a new empty dict.
        - convert (`Callable`, optional): converts each value, `str` by default. Keys stay strings.
    '''

    def __init__(self, ref: FieldRef, convert: Callable[[str], Any] = str) -> None:
        if ref.get() is None:
            ref.set({})
        self.ref = ref
        self.convert = convert

    def parse(self, token: str) -> None:
        key, value = split_map_entry(token)
        self.ref.get()[key] = self.convert(value)

    def render(self) -> str:
        return ''
