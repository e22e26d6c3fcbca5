'''
A custom ArgumentParser that binds the flag fields of a record and writes the parsed values into it.
'''
import logging
import sys
from argparse import (
    SUPPRESS,
    Action,
    ArgumentError,
    ArgumentParser,
    ArgumentTypeError,
    HelpFormatter,
)
from functools import partial
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .exceptions import DuplicateFlagError, FlagParseError, UnsupportedFieldTypeError
from .types import ErrorPolicy, FieldRef, FlagKind, FlagSpec, FlagValue
from .utils import (
    FALSE_LITERALS,
    TRUE_LITERALS,
    analysis_record,
    infer_kind,
    kind_holds,
    parse_bool,
    parse_duration,
    parse_float,
    parse_int,
    parse_int64,
    parse_uint,
)
from .values import ListValue, MapValue

logger = logging.getLogger(__name__)

_SCALAR_CONVERTERS = {
    FlagKind.Int: parse_int,
    FlagKind.Int64: parse_int64,
    FlagKind.UInt: parse_uint,
    FlagKind.UInt64: parse_uint,
    FlagKind.Float64: parse_float,
    FlagKind.String: str,
    FlagKind.Duration: parse_duration,
}

_REPEATABLE_VALUES = {
    FlagKind.StringList: partial(ListValue, convert=str),
    FlagKind.IntList: partial(ListValue, convert=parse_int),
    FlagKind.StringMap: partial(MapValue, convert=str),
    FlagKind.IntMap: partial(MapValue, convert=parse_int),
}


class _StoreFieldAction(Action):
    '''
        Stores the value converted by the parser into the record field.
    '''

    def __init__(self, option_strings, dest, ref: FieldRef, **kwargs) -> None:
        super(_StoreFieldAction, self).__init__(option_strings, dest, **kwargs)
        self.ref = ref

    def __call__(self, parser, namespace, values, option_string=None):
        self.ref.set(values)


class _SwitchFieldAction(Action):
    '''
        Sets a bool field: `-name` stores True, `-name=<literal>` stores the literal.
    '''

    def __init__(self, option_strings, dest, ref: FieldRef, **kwargs) -> None:
        super(_SwitchFieldAction, self).__init__(
            option_strings, dest, nargs=0, **kwargs
        )
        self.ref = ref

    def __call__(self, parser, namespace, values, option_string=None):
        _, sep, literal = (option_string or '').partition('=')
        self.ref.set(parse_bool(literal) if sep else True)


class _FlagValueAction(Action):
    '''
        Hands every token of the flag to a `FlagValue`.
    '''

    def __init__(self, option_strings, dest, value: FlagValue, **kwargs) -> None:
        super(_FlagValueAction, self).__init__(option_strings, dest, **kwargs)
        self.value = value

    def __call__(self, parser, namespace, values, option_string=None):
        try:
            self.value.parse(values)
        except (ArgumentTypeError, TypeError, ValueError) as err:
            raise ArgumentError(self, f'invalid value {values!r}: {err}') from err


class BindingParser(ArgumentParser):
    '''
        A command-line argument parser that binds the flag fields of records and
        parses the command-line directly into them.

        Every field of a dataclass instance whose metadata names a flag is registered
        under that name, using the current value of the field as the default. Parsing
        mutates the fields in place; the tokens that are not flags are returned.

        Parameters:
        - records (`Any`): dataclass instances to bind.
        - error_policy (`ErrorPolicy`, optional):
            Raise `FlagParseError` (default) or print the usage and exit on a parse error.

        Example:
        ```python
        from dataclasses import dataclass

        @dataclass
        class Options:
            count: int = FlagField(0, name='count', help='how many times')

        options = Options()
        parser = BindingParser(options)

        args = parser.parse_flags(['-count', '5', 'input.txt'])

        print(options.count, args)  # 5 ['input.txt']
        ```
    '''

    def __init__(
        self,
        *records: Any,
        error_policy: ErrorPolicy = ErrorPolicy.Raise,
        prog: Optional[str] = None,
        usage: Optional[str] = None,
        description: Optional[str] = None,
        epilog: Optional[str] = None,
        formatter_class=HelpFormatter,
        prefix_chars: str = '-',
        add_help: bool = True
    ) -> None:
        super(BindingParser, self).__init__(
            prog=prog,
            usage=usage,
            description=description,
            epilog=epilog,
            formatter_class=formatter_class,
            prefix_chars=prefix_chars,
            add_help=add_help,
            allow_abbrev=False
        )
        self.error_policy = ErrorPolicy(error_policy)
        self._flags: Dict[str, FlagSpec] = {}

        for record in records:
            self.bind(record)

    @property
    def flags(self) -> Dict[str, FlagSpec]:
        '''
            The registered flags by name.
        '''
        return dict(self._flags)

    def bind(self, record: Any) -> List[FlagSpec]:
        '''
            Register all the flag fields of a dataclass instance.

            The whole record is analysed and checked for duplicate names before the
            first flag is registered.

            Parameters:
            - record (`Any`): the dataclass instance to bind.

            Returns:
            - `List[FlagSpec]`: the registered entries in field declaration order.

            Raises:
            - `InvalidArgumentShapeError`: if `record` is not a dataclass instance.
            - `UnsupportedFieldTypeError`: if a flag field has a type that cannot be bound.
            - `DuplicateFlagError`: if a flag name is already taken.
        '''
        specs = analysis_record(record)
        self._check_duplicates(specs)
        for spec in specs:
            self._register(record, spec)

        return specs

    def add_flag(
        self,
        record: Any,
        attr: str,
        name: str,
        help: str = '',
        kind: Optional[FlagKind] = None
    ) -> FlagSpec:
        '''
            Register one attribute of any object as a flag.

            Parameters:
            - record (`Any`): the object owning the attribute.
            - attr (`str`): the attribute name.
            - name (`str`): the flag name.
            - help (`str`, optional): help text for the flag.
            - kind (`Optional[FlagKind]`, optional):
                The kind of the flag. Inferred from the current value when omitted, which
                does not work for lists and dicts.

            Returns:
            - `FlagSpec`: the registered entry.
        '''
        default = getattr(record, attr)
        if kind is None:
            kind = infer_kind(default)
        kind = FlagKind(kind)
        if kind is FlagKind.Unsupported or not kind_holds(kind, default) or (
            kind is FlagKind.Custom and default is None
        ):
            raise UnsupportedFieldTypeError(attr, type(default))

        spec = FlagSpec(
            attr=attr, name=name, kind=kind, help=help, default=default
        )
        self._check_duplicates([spec])
        self._register(record, spec)

        return spec

    def parse_flags(self, args: Optional[Sequence[str]] = None) -> List[str]:
        '''
            Parse the command-line into the bound records.

            Parameters:
            - args (`Optional[Sequence[str]]`, optional):
                The tokens to parse. If not provided, `sys.argv[1:]` is used.

            Returns:
            - `List[str]`: the tokens that were not consumed as flags or flag values, in order.
                A `--` terminator is consumed; every token after it is left over as is.
        '''
        if args is None:
            args = sys.argv[1:]
        tokens, rest = self._join_values(args)
        _, leftover = self.parse_known_args(tokens)

        return leftover + rest

    def _join_values(self, args: Sequence[str]) -> Tuple[List[str], List[str]]:
        '''
            Attach the following token to every flag that takes a value, so that a value
            starting with a prefix character is not read as a flag.

            Returns the tokens before the first `--` terminator and the tokens after it.
        '''
        joined: List[str] = []
        tokens = iter(args)
        for token in tokens:
            if token == '--':
                return joined, list(tokens)

            action = self._option_string_actions.get(token)
            if action is not None:
                if action.nargs is None:
                    value = next(tokens, None)
                    if value is not None:
                        token = f'{token}={value}'
            elif self._is_unknown_flag(token):
                self.error(f'flag provided but not defined: {token.partition("=")[0]}')
            joined.append(token)

        return joined, []

    def _is_unknown_flag(self, token: str) -> bool:
        if len(token) < 2 or token[0] not in self.prefix_chars:
            return False
        if self._negative_number_matcher.match(token):
            return False
        return token.partition('=')[0] not in self._option_string_actions

    def error(self, message: str):
        if self.error_policy is ErrorPolicy.Exit:
            super(BindingParser, self).error(message)
        raise FlagParseError(message)

    def _check_duplicates(self, specs: Iterable[FlagSpec]) -> None:
        seen = set()
        for spec in specs:
            for option in spec.options(self.prefix_chars[0]):
                if option in self._option_string_actions or option in seen:
                    raise DuplicateFlagError(
                        f'Flag "{spec.name}" of field "{spec.attr}" is already defined'
                    )
                seen.add(option)

    def _register(self, record: Any, spec: FlagSpec) -> None:
        ref = FieldRef(record, spec.attr)
        options = spec.options(self.prefix_chars[0])
        kwargs = {'dest': spec.attr, 'default': SUPPRESS}

        if spec.is_switch:
            self.add_argument(
                *options,
                action=_SwitchFieldAction,
                ref=ref,
                help=self._help_text(spec),
                **kwargs
            )
            # -name=false and friends are matched as whole option strings
            self.add_argument(
                *[
                    f'{option}={literal}' for option in options
                    for literal in TRUE_LITERALS + FALSE_LITERALS
                ],
                action=_SwitchFieldAction,
                ref=ref,
                help=SUPPRESS,
                **kwargs
            )
        elif FlagKind.is_scalar(spec.kind):
            self.add_argument(
                *options,
                action=_StoreFieldAction,
                ref=ref,
                type=_SCALAR_CONVERTERS[spec.kind],
                metavar=spec.metavar,
                help=self._help_text(spec),
                **kwargs
            )
        else:
            value = self._flag_value(ref, spec)
            self.add_argument(
                *options,
                action=_FlagValueAction,
                value=value,
                metavar=spec.metavar,
                help=self._help_text(spec),
                **kwargs
            )

        self._flags[spec.name] = spec
        logger.debug(
            'bound flag %s to %r as %s', options[0], ref, spec.kind.value
        )

    def _flag_value(self, ref: FieldRef, spec: FlagSpec) -> FlagValue:
        if spec.is_repeatable:
            return _REPEATABLE_VALUES[spec.kind](ref)

        value = ref.get()
        if value is None and spec.factory is not None:
            value = spec.factory()
            ref.set(value)
            spec.default = value
        return value

    @staticmethod
    def _help_text(spec: FlagSpec) -> str:
        # argparse treats "%" as a format character in help strings
        text = ' '.join(filter(None, (spec.help, spec.help_suffix)))
        return text.replace('%', '%%')


def build_parser(
    record: Any,
    error_policy: ErrorPolicy = ErrorPolicy.Raise,
    **kwargs
) -> BindingParser:
    '''
        Create a parser with the flag fields of `record` registered, without parsing anything.

        Extra keyword arguments are passed to `BindingParser`, e.g. `prog` or `description`.
        More flags can be added to the returned parser before parsing.
    '''
    return BindingParser(record, error_policy=error_policy, **kwargs)


def parse_args(
    record: Any,
    args: Sequence[str],
    error_policy: ErrorPolicy = ErrorPolicy.Raise
) -> List[str]:
    '''
        Parse `args` into the flag fields of `record`.

        Parameters:
        - record (`Any`): the dataclass instance to populate.
        - args (`Sequence[str]`): the command-line tokens, without the program name.
        - error_policy (`ErrorPolicy`, optional): Raise `FlagParseError` by default.

        Returns:
        - `List[str]`: the leftover positional tokens.
    '''
    parser = build_parser(record, error_policy)
    return parser.parse_flags(args)


def parse(record: Any, error_policy: ErrorPolicy = ErrorPolicy.Exit) -> List[str]:
    '''
        Parse `sys.argv[1:]` into the flag fields of `record`, exiting with the usage on errors.
    '''
    return parse_args(record, sys.argv[1:], error_policy)
