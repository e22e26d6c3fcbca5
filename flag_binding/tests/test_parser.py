import sys
from dataclasses import dataclass, fields
from datetime import timedelta
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from ..exceptions import (
    DuplicateFlagError,
    FlagParseError,
    InvalidArgumentShapeError,
    UnsupportedFieldTypeError,
)
from ..parser import BindingParser, build_parser, parse, parse_args
from ..types import ErrorPolicy, FlagField, FlagKind, FlagValue, Int64, UInt

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')


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


class Opaque:
    pass


@dataclass
class CountOptions:
    count: int = FlagField(0, name='count', help='how many times')


@dataclass
class ScalarOptions:
    verbose: bool = FlagField(True, name='verbose', help='talk more')
    retries: int = FlagField(3, name='retries', help='retry budget')
    offset: Int64 = FlagField(-2, name='offset')
    size: UInt = FlagField(1, name='size')
    ratio: float = FlagField(3.14, name='ratio')
    label: str = FlagField('hello', name='label')
    timeout: timedelta = FlagField(timedelta(days=1), name='timeout', help='how long to wait')


@dataclass
class CollectionOptions:
    int_array: List[int] = FlagField(default_factory=list, name='intArray')
    string_array: Optional[List[str]] = FlagField(None, name='stringArray')
    int_map: Dict[str, int] = FlagField(default_factory=dict, name='intMap')
    string_map: Optional[Dict[str, str]] = FlagField(None, name='stringMap')


@dataclass
class WeekdayOptions:
    weekday: Weekday = FlagField(
        default_factory=lambda: Weekday('Saturday'), name='weekday', help='a weekday'
    )
    backup_day: Optional[Weekday] = FlagField(None, name='backupDay')


@dataclass
class OpaqueOptions:
    count: int = FlagField(0, name='count')
    thing: Opaque = FlagField(default_factory=Opaque, name='thing')


@dataclass
class DuplicateOptions:
    first: int = FlagField(0, name='level')
    second: str = FlagField('', name='level')


@dataclass
class HelpClashOptions:
    host: str = FlagField('', name='h')


@dataclass
class ShortOptions:
    count: int = FlagField(0, name='c')


def test_parse_args_end_to_end():
    options = CountOptions()
    args = parse_args(options, ['-count', '5', 'positional1'])

    assert options.count == 5
    assert args == ['positional1']


def test_defaults_survive_without_tokens():
    options = ScalarOptions()
    args = parse_args(options, [])

    assert args == []
    for field in fields(ScalarOptions):
        assert getattr(options, field.name) == field.default


def test_scalar_flags():
    options = ScalarOptions()
    args = parse_args(
        options, [
            '-retries=0x10', '--offset', '-9', '-size', '7', '-ratio', '0.5',
            '-label', 'a b', '-timeout', '1m30s', 'rest'
        ]
    )

    assert options.retries == 16
    assert options.offset == -9
    assert options.size == 7
    assert options.ratio == 0.5
    assert options.label == 'a b'
    assert options.timeout == timedelta(seconds=90)
    assert args == ['rest']


def test_bool_flag_forms():
    options = ScalarOptions(verbose=False)
    args = parse_args(options, ['-verbose', 'positional'])
    assert options.verbose is True
    assert args == ['positional']

    options = ScalarOptions()
    parse_args(options, ['-verbose=false'])
    assert options.verbose is False

    options = ScalarOptions(verbose=False)
    parse_args(options, ['--verbose=T'])
    assert options.verbose is True


def test_bool_flag_rejects_unknown_literal():
    with pytest.raises(FlagParseError):
        parse_args(ScalarOptions(), ['-verbose=yes'])


def test_repeated_flags_keep_order():
    options = CollectionOptions()
    parse_args(
        options, [
            '-intArray', '1', '-stringArray', 'x', '-intArray', '2',
            '-intArray=3', '-stringArray', 'x'
        ]
    )

    assert options.int_array == [1, 2, 3]
    assert options.string_array == ['x', 'x']


def test_repeated_map_flags_last_value_wins():
    options = CollectionOptions()
    parse_args(
        options,
        ['-intMap', 'a=1', '-intMap', 'a=2', '-stringMap', 'k=1=2', '-intMap', 'b=-4']
    )

    assert options.int_map == {'a': 2, 'b': -4}
    assert options.string_map == {'k': '1=2'}


def test_absent_collections_start_empty():
    options = CollectionOptions()
    build_parser(options)

    assert options.string_array == []
    assert options.string_map == {}


@pytest.mark.parametrize('token', ['a=', '=1', 'nokey_novalue'])
def test_malformed_map_entry_fails_parsing(token):
    with pytest.raises(FlagParseError, match='key and value must both be non-empty'):
        parse_args(CollectionOptions(), ['-stringMap', token])


@pytest.mark.parametrize(
    'args', [
        ['-count', 'five'],
        ['-count'],
        ['-intArray', '1.5'],
    ]
)
def test_bad_tokens_raise(args):
    options = CollectionOptions()
    parser = BindingParser(options)
    parser.add_flag(options, 'int_array', 'count', kind=FlagKind.IntList)
    with pytest.raises(FlagParseError):
        parser.parse_flags(args)


def test_numeric_error_message():
    with pytest.raises(FlagParseError, match='invalid syntax'):
        parse_args(CountOptions(), ['-count', 'five'])


def test_unsigned_rejects_negative():
    with pytest.raises(FlagParseError):
        parse_args(ScalarOptions(), ['-size', '-1'])


def test_custom_value_flag():
    options = WeekdayOptions()
    parse_args(options, ['-weekday', 'friday', '-backupDay', 'SUNDAY'])

    assert options.weekday.day == 'Friday'
    assert options.backup_day.day == 'Sunday'


def test_custom_value_created_when_missing():
    options = WeekdayOptions()
    build_parser(options)

    assert isinstance(options.backup_day, Weekday)
    assert options.backup_day.day == 'Monday'


def test_custom_value_error():
    with pytest.raises(FlagParseError, match='not a weekday'):
        parse_args(WeekdayOptions(), ['-weekday', 'funday'])


def test_unknown_flag_is_an_error():
    options = CountOptions()
    with pytest.raises(FlagParseError, match='flag provided but not defined: -cuont'):
        parse_args(options, ['-cuont', '5', 'p'])

    assert options.count == 0


def test_unknown_flag_exits_under_exit_policy(capsys):
    parser = build_parser(CountOptions(), ErrorPolicy.Exit, prog='counter')
    with pytest.raises(SystemExit) as excinfo:
        parser.parse_flags(['-count', '1', '--unknown=2'])

    assert excinfo.value.code == 2
    assert 'flag provided but not defined: --unknown' in capsys.readouterr().err


def test_positional_tokens_are_left_over():
    options = CountOptions()
    args = parse_args(options, ['a', '-count', '2', 'b', '-', '-7'])

    assert options.count == 2
    assert args == ['a', 'b', '-', '-7']


def test_terminator_is_consumed():
    options = CountOptions()
    args = parse_args(options, ['-count', '1', '--', '-count', '2', 'p'])

    assert options.count == 1
    assert args == ['-count', '2', 'p']

    assert parse_args(CountOptions(), ['p', '--', '--']) == ['p', '--']


def test_value_flags_take_the_next_token():
    options, collections = ScalarOptions(), CollectionOptions()
    parser = BindingParser(options, collections)
    args = parser.parse_flags(
        [
            '-label', '-dashed', '-stringArray', '-a', '--stringArray', '--b',
            '-stringMap', 'k=-v', 'p'
        ]
    )

    assert options.label == '-dashed'
    assert collections.string_array == ['-a', '--b']
    assert collections.string_map == {'k': '-v'}
    assert args == ['p']

    parse_args(options, ['-label', ''])
    assert options.label == ''


def test_single_character_flag_needs_a_separate_value():
    options = ShortOptions()
    assert parse_args(options, ['-c', '5']) == []
    assert options.count == 5

    parse_args(options, ['-c=6'])
    assert options.count == 6

    with pytest.raises(FlagParseError, match='not defined: -c5'):
        parse_args(ShortOptions(), ['-c5'])


def test_unsupported_field_fails_before_parsing():
    options = OpaqueOptions()
    with pytest.raises(UnsupportedFieldTypeError, match='thing'):
        parse_args(options, ['-count', '5'])

    assert options.count == 0


@pytest.mark.parametrize('record', [CountOptions, 'count', None])
def test_invalid_argument_shape(record):
    with pytest.raises(InvalidArgumentShapeError):
        build_parser(record)


def test_duplicate_flag_names():
    with pytest.raises(DuplicateFlagError, match='level'):
        build_parser(DuplicateOptions())

    with pytest.raises(DuplicateFlagError):
        build_parser(HelpClashOptions())

    with pytest.raises(DuplicateFlagError):
        BindingParser(CountOptions(), CountOptions())


def test_duplicate_detected_before_registration():
    parser = BindingParser()
    with pytest.raises(DuplicateFlagError):
        parser.bind(DuplicateOptions())

    assert parser.flags == {}


def test_bind_several_records():
    counts, collections = CountOptions(), CollectionOptions()
    parser = BindingParser(counts, collections)
    args = parser.parse_flags(['-count', '1', '-intArray', '9', 'tail'])

    assert counts.count == 1
    assert collections.int_array == [9]
    assert args == ['tail']
    assert set(parser.flags) == {'count', 'intArray', 'stringArray', 'intMap', 'stringMap'}


def test_add_flag_explicit_registration():
    holder = SimpleNamespace(level=3, tags=None, day=Weekday())
    parser = BindingParser()
    parser.add_flag(holder, 'level', 'level', 'the level')
    parser.add_flag(holder, 'tags', 'tag', kind=FlagKind.StringList)
    parser.add_flag(holder, 'day', 'day')
    args = parser.parse_flags(['-level', '4', '-tag', 'a', 'rest', '-tag', 'b', '-day', 'tuesday'])

    assert holder.level == 4
    assert holder.tags == ['a', 'b']
    assert holder.day.day == 'Tuesday'
    assert args == ['rest']


def test_add_flag_requires_a_kind_for_collections():
    holder = SimpleNamespace(tags=[])
    with pytest.raises(UnsupportedFieldTypeError):
        BindingParser().add_flag(holder, 'tags', 'tag')


def test_add_flag_rejects_kind_that_cannot_hold_the_value():
    holder = SimpleNamespace(label='x')
    with pytest.raises(UnsupportedFieldTypeError, match='label'):
        BindingParser().add_flag(holder, 'label', 'label', kind=FlagKind.StringList)


def test_exit_policy_prints_usage(capsys):
    parser = build_parser(CountOptions(), ErrorPolicy.Exit, prog='counter')
    with pytest.raises(SystemExit) as excinfo:
        parser.parse_flags(['-count', 'five'])

    assert excinfo.value.code == 2
    err = capsys.readouterr().err
    assert 'usage: counter' in err
    assert 'invalid syntax' in err


def test_parse_reads_process_arguments(monkeypatch):
    monkeypatch.setattr(sys, 'argv', ['prog', '-count', '2', 'file.txt'])
    options = CountOptions()

    assert parse(options) == ['file.txt']
    assert options.count == 2


def test_help_shows_defaults():
    parser = build_parser(ScalarOptions(), prog='demo')
    parser.bind(WeekdayOptions())
    parser.bind(CollectionOptions())
    text = parser.format_help()

    assert '--retries int' in text
    assert 'retry budget (default 3)' in text
    assert 'talk more (default true)' in text
    assert '(default "hello")' in text
    assert 'how long to wait (default 24h0m0s)' in text
    assert 'a weekday (default Saturday)' in text
    assert '--intArray value' in text
    assert '-verbose=false' not in text
