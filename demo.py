from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List

from flag_binding import ErrorPolicy, Field, FlagParseError, FlagValue, Int64, UInt, UInt64, parse

WEEKDAYS = (
    'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday',
    'Sunday'
)


class Weekday(FlagValue):

    def __init__(self, day: str = 'Monday') -> None:
        self.day = day

    def parse(self, token: str) -> None:
        for day in WEEKDAYS:
            if day.lower() == token.lower():
                self.day = day
                return
        raise ValueError('not a weekday')

    def render(self) -> str:
        return self.day

    def __repr__(self) -> str:
        return f'Weekday({self.day!r})'


@dataclass
class DemoOptions:

    my_bool: bool = Field(False, name='bool', help='a bool')
    my_int: int = Field(0, name='int', help='an int')
    my_int64: Int64 = Field(0, name='int64', help='an int64')
    my_uint: UInt = Field(0, name='uint', help='an uint')
    my_uint64: UInt64 = Field(0, name='uint64', help='an uint64')
    my_float64: float = Field(3.14, name='float64', help='a float64')
    my_string: str = Field('hello, world', name='string', help='a string')
    my_duration: timedelta = Field(
        timedelta(days=1),
        name='duration',
        help="a duration, such as '300ms', '-1.5h' or '2h45m'"
    )
    my_string_map: Dict[str, str] = Field(
        default_factory=dict,
        name='stringMap',
        help='string=string (can be used multiple times)'
    )
    my_string_array: List[str] = Field(
        default_factory=list,
        name='stringArray',
        help='a string (can be used multiple times)'
    )
    my_int_map: Dict[str, int] = Field(
        default_factory=dict,
        name='intMap',
        help='string=int (can be used multiple times)'
    )
    my_int_array: List[int] = Field(
        default_factory=list,
        name='intArray',
        help='an int (can be used multiple times)'
    )
    my_weekday: Weekday = Field(
        default_factory=lambda: Weekday('Saturday'),
        name='weekday',
        help='a weekday: ' + ', '.join(WEEKDAYS)
    )


if __name__ == '__main__':
    options = DemoOptions()
    try:
        args = parse(options, ErrorPolicy.Raise)
    except FlagParseError as e:
        print(f'Error: {e}')
    else:
        print(f'flags = {options}\nargs = {args}')
