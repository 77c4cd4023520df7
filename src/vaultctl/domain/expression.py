"""Query expressions — tokenizer, parser, evaluator, static extraction.

The grammar is a small boolean/comparison language used by ``--where``
filters and dynamic sources::

    status == 'done' && !isEmpty(due) && due < today() + '7d'

Precedence, lowest first: ``||``, ``&&``, prefix ``!``, ``== !=``,
``< > <= >=``, ``+ -``, ``* / %``, then unary ``-`` and postfix member
access / calls.  A ``!`` that starts an operand negates the whole
comparison that follows (``!a == b`` is ``!(a == b)``); a ``!`` in the
right operand of an operator binds tightly.

Parentheses only steer precedence; they leave no node in the tree.

The engine is pure: parsing and evaluation share no mutable state and
are safe to call from many threads at once.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any


class ExpressionError(Exception):
    """A query expression could not be parsed or evaluated."""


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class Member:
    object: Node
    property: Node
    computed: bool


@dataclass(frozen=True)
class Unary:
    operator: str
    argument: Node


@dataclass(frozen=True)
class Binary:
    operator: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Logical:
    operator: str  # "&&" or "||"
    left: Node
    right: Node


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple[Node, ...]


Node = Literal | Identifier | Member | Unary | Binary | Logical | Call


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    kind: str  # "num", "str", "ident", "op", "eof"
    value: Any
    pos: int


_OPERATORS = (
    "===", "!==", "==", "!=", "<=", ">=", "&&", "||",
    "<", ">", "+", "-", "*", "/", "%", "!", "(", ")", "[", "]", ".", ",",
)  # fmt: skip
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_IDENT = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def _read_string(text: str, start: int) -> tuple[str, int]:
    quote = text[start]
    chars: list[str] = []
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            chars.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        if ch == quote:
            return "".join(chars), i + 1
        chars.append(ch)
        i += 1
    raise ExpressionError(f"Expression parse error: Unclosed quote after \"{text[start:]}\"")


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch in "'\"":
            value, end = _read_string(text, i)
            tokens.append(Token("str", value, i))
            i = end
            continue
        match = _NUMBER.match(text, i)
        if match:
            raw = match.group(0)
            tokens.append(Token("num", float(raw) if "." in raw else int(raw), i))
            i = match.end()
            continue
        match = _IDENT.match(text, i)
        if match:
            tokens.append(Token("ident", match.group(0), i))
            i = match.end()
            continue
        for op in _OPERATORS:
            if text.startswith(op, i):
                tokens.append(Token("op", op[:2] if op in ("===", "!==") else op, i))
                i += len(op)
                break
        else:
            raise ExpressionError(f"Expression parse error: Unexpected \"{ch}\" at character {i}")
    tokens.append(Token("eof", None, len(text)))
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_KEYWORDS: dict[str, Any] = {"true": True, "false": False, "null": None}


class _Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = tokenize(text)
        self._pos = 0

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _next(self) -> Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _accept(self, *ops: str) -> str | None:
        token = self._peek()
        if token.kind == "op" and token.value in ops:
            self._pos += 1
            return str(token.value)
        return None

    def _expect(self, op: str) -> None:
        if self._accept(op) is None:
            token = self._peek()
            found = "end of expression" if token.kind == "eof" else repr(token.value)
            raise ExpressionError(
                f"Expression parse error: Expected '{op}' at character {token.pos}, found {found}"
            )

    def parse(self) -> Node:
        if self._peek().kind == "eof":
            raise ExpressionError("Expression parse error: Empty expression")
        node = self._or()
        token = self._peek()
        if token.kind != "eof":
            raise ExpressionError(
                f"Expression parse error: Unexpected {token.value!r} at character {token.pos}"
            )
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||"):
            node = Logical("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._accept("&&"):
            node = Logical("&&", node, self._not())
        return node

    def _not(self) -> Node:
        if self._accept("!"):
            return Unary("!", self._not())
        return self._equality()

    def _equality(self) -> Node:
        node = self._relational()
        while op := self._accept("==", "!="):
            node = Binary(op, node, self._relational())
        return node

    def _relational(self) -> Node:
        node = self._additive()
        while op := self._accept("<=", ">=", "<", ">"):
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while op := self._accept("+", "-"):
            node = Binary(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while op := self._accept("*", "/", "%"):
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if op := self._accept("!", "-", "+"):
            return Unary(op, self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._accept("."):
                token = self._next()
                if token.kind != "ident":
                    raise ExpressionError(
                        f"Expression parse error: Expected property name at character {token.pos}"
                    )
                node = Member(node, Identifier(token.value), computed=False)
            elif self._accept("["):
                prop = self._or()
                self._expect("]")
                node = Member(node, prop, computed=True)
            elif self._accept("("):
                if not isinstance(node, Identifier):
                    raise ExpressionError("Expression parse error: Only named functions can be called")
                node = self._call(node.name)
            else:
                return node

    def _call(self, name: str) -> Call:
        args: list[Node] = []
        if not self._accept(")"):
            args.append(self._or())
            while self._accept(","):
                args.append(self._or())
            self._expect(")")
        spec = FUNCTIONS.get(name)
        if spec is None:
            raise ExpressionError(f"Unknown function: {name}")
        if len(args) != spec.arity:
            raise ExpressionError(
                f"Function {name}() takes {spec.arity} argument(s), got {len(args)}"
            )
        return Call(name, tuple(args))

    def _primary(self) -> Node:
        token = self._next()
        if token.kind in ("num", "str"):
            return Literal(token.value)
        if token.kind == "ident":
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            return Identifier(token.value)
        if token.kind == "op" and token.value == "(":
            node = self._or()
            self._expect(")")
            return node
        found = "end of expression" if token.kind == "eof" else repr(token.value)
        raise ExpressionError(
            f"Expression parse error: Unexpected {found} at character {token.pos}"
        )


def parse_expression(text: str) -> Node:
    """Parse *text* into an AST.

    Raises:
        ExpressionError: on any syntax error, unknown function, or
            wrong number of arguments.
    """
    return _Parser(text).parse()


# ---------------------------------------------------------------------------
# Evaluation context
# ---------------------------------------------------------------------------


class _Undefined:
    """Marker for a frontmatter key that is absent (not merely null)."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "undefined"


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class FileInfo:
    """File attributes exposed to expressions as ``file.*``."""

    name: str
    path: str
    folder: str
    ext: str = ".md"
    size: int | None = None
    mtime: datetime | None = None


@dataclass
class EvalContext:
    """One document's view for expression evaluation.

    The body is only read when an expression touches ``file.body``.
    """

    frontmatter: dict[str, Any]
    file: FileInfo | None = None
    body_loader: Callable[[], str] | None = None
    _body: str | None = field(default=None, init=False, repr=False)

    @property
    def body(self) -> str:
        if self._body is None:
            self._body = self.body_loader() if self.body_loader else ""
        return self._body


# ---------------------------------------------------------------------------
# Coercion and comparison
# ---------------------------------------------------------------------------

_DURATION = re.compile(r"^'?(\d+)(min|h|d|w|mon|y)'?$")
_DURATION_UNITS = {
    "min": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "mon": timedelta(days=30),
    "y": timedelta(days=365),
}
_DATE_STRING = re.compile(r"^\d{4}-\d{2}-\d{2}")


def parse_duration(text: str) -> timedelta | None:
    """``'7d'`` -> 7 days.  Units: min, h, d, w, mon (30d), y (365d)."""
    match = _DURATION.match(text.strip())
    if not match:
        return None
    return int(match.group(1)) * _DURATION_UNITS[match.group(2)]


def _is_nullish(value: Any) -> bool:
    return value is None or value is UNDEFINED


def _is_date(value: Any) -> bool:
    return isinstance(value, (date, datetime))


def _is_date_like(value: Any) -> bool:
    return _is_date(value) or (isinstance(value, str) and bool(_DATE_STRING.match(value.strip())))


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and _DATE_STRING.match(value.strip()):
        try:
            return datetime.fromisoformat(value.strip().replace(" ", "T", 1)).replace(tzinfo=None)
        except ValueError:
            return None
    return None


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, timedelta):
        return value.total_seconds() * 1000
    if isinstance(value, str):
        duration = parse_duration(value)
        if duration is not None:
            return duration.total_seconds() * 1000
        try:
            return float(value)
        except ValueError:
            return 0.0
    if _is_date(value):
        moment = _to_datetime(value)
        return moment.timestamp() * 1000 if moment else 0.0
    return 0.0


def to_text(value: Any) -> str:
    """String form used for equality: ``3.0`` -> ``"3"``, ``True`` -> ``"true"``."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return ",".join(to_text(v) for v in value)
    return str(value)


def values_equal(a: Any, b: Any) -> bool:
    """Equality coerces both sides to text unless both are dates."""
    if _is_nullish(a) or _is_nullish(b):
        return _is_nullish(a) and _is_nullish(b)
    if _is_date(a) and _is_date(b):
        return _to_datetime(a) == _to_datetime(b)
    return to_text(a) == to_text(b)


def compare_values(a: Any, b: Any) -> int:
    """Three-way ordering: nulls first, then dates, numbers, durations, text."""
    if _is_nullish(a):
        return 0 if _is_nullish(b) else -1
    if _is_nullish(b):
        return 1
    if _is_date(a) or _is_date(b):
        left, right = _to_datetime(a), _to_datetime(b)
        if left is not None and right is not None:
            return (left > right) - (left < right)
    numeric = (int, float)
    if (isinstance(a, numeric) and not isinstance(a, bool)) or (
        isinstance(b, numeric) and not isinstance(b, bool)
    ):
        x, y = _to_number(a), _to_number(b)
        return (x > y) - (x < y)
    text_a, text_b = to_text(a), to_text(b)
    dur_a, dur_b = parse_duration(text_a), parse_duration(text_b)
    if dur_a is not None or dur_b is not None:
        x = dur_a or timedelta(0)
        y = dur_b or timedelta(0)
        return (x > y) - (x < y)
    return (text_a > text_b) - (text_a < text_b)


def _shift(left: Any, right: Any, sign: int) -> Any | None:
    """Date +/- duration, or None when the operands are not of that shape.

    Raises:
        ExpressionError: if *left* is a date and *right* is a string that
            is not a duration.
    """
    duration = right if isinstance(right, timedelta) else None
    if duration is None and isinstance(right, str):
        duration = parse_duration(right)
        if duration is None and _is_date_like(left):
            raise ExpressionError(f"Invalid duration: '{right}'")
    if duration is None:
        return None
    if isinstance(left, datetime):
        return left + sign * duration
    if isinstance(left, date):
        shifted = datetime(left.year, left.month, left.day) + sign * duration
        return shifted.date() if duration % timedelta(days=1) == timedelta(0) else shifted
    if isinstance(left, str) and _DATE_STRING.match(left):
        moment = _to_datetime(left)
        if moment is not None:
            return _shift(moment.date() if len(left.strip()) == 10 else moment, duration, sign)
    return None


def _add(left: Any, right: Any) -> Any:
    shifted = _shift(left, right, 1)
    if shifted is not None:
        return shifted
    if isinstance(left, str) and isinstance(right, str):
        dur_a, dur_b = parse_duration(left), parse_duration(right)
        if dur_a is not None and dur_b is not None:
            return dur_a + dur_b
        return left + right
    return _to_number(left) + _to_number(right)


def _subtract(left: Any, right: Any) -> Any:
    shifted = _shift(left, right, -1)
    if shifted is not None:
        return shifted
    return _to_number(left) - _to_number(right)


# ---------------------------------------------------------------------------
# Built-in functions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionSpec:
    arity: int
    impl: Callable[[list[Any], EvalContext], Any]


def _str(value: Any) -> str:
    return "" if _is_nullish(value) else to_text(value)


def _contains(args: list[Any], _ctx: EvalContext) -> bool:
    haystack, needle = args
    if isinstance(haystack, list):
        return any(values_equal(item, needle) for item in haystack)
    return _str(needle) in _str(haystack)


def _is_empty(args: list[Any], _ctx: EvalContext) -> bool:
    value = args[0]
    if _is_nullish(value):
        return True
    return value == "" or value == []


def _date_part(attr: str) -> Callable[[list[Any], EvalContext], Any]:
    def impl(args: list[Any], _ctx: EvalContext) -> Any:
        moment = _to_datetime(args[0])
        if moment is None:
            raise ExpressionError(f"Cannot read {attr} of {args[0]!r}")
        return getattr(moment, attr)

    return impl


def _to_date_value(args: list[Any], _ctx: EvalContext) -> Any:
    moment = _to_datetime(args[0])
    if moment is None:
        raise ExpressionError(f"Invalid date: {args[0]!r}")
    return moment


def _has_tag(args: list[Any], ctx: EvalContext) -> bool:
    tags = ctx.frontmatter.get("tags")
    return isinstance(tags, list) and _str(args[0]) in [_str(t) for t in tags]


def _in_folder(args: list[Any], ctx: EvalContext) -> bool:
    return ctx.file is not None and ctx.file.folder.startswith(_str(args[0]))


def _length(args: list[Any], _ctx: EvalContext) -> int:
    value = args[0]
    return len(value) if isinstance(value, list) else len(_str(value))


FUNCTIONS: dict[str, FunctionSpec] = {
    "contains": FunctionSpec(2, _contains),
    "startsWith": FunctionSpec(2, lambda a, _c: _str(a[0]).startswith(_str(a[1]))),
    "endsWith": FunctionSpec(2, lambda a, _c: _str(a[0]).endswith(_str(a[1]))),
    "lower": FunctionSpec(1, lambda a, _c: _str(a[0]).lower()),
    "upper": FunctionSpec(1, lambda a, _c: _str(a[0]).upper()),
    "trim": FunctionSpec(1, lambda a, _c: _str(a[0]).strip()),
    "length": FunctionSpec(1, _length),
    "replace": FunctionSpec(3, lambda a, _c: _str(a[0]).replace(_str(a[1]), _str(a[2]), 1)),
    "today": FunctionSpec(0, lambda _a, _c: date.today()),
    "now": FunctionSpec(0, lambda _a, _c: datetime.now().replace(second=0, microsecond=0)),
    "date": FunctionSpec(1, _to_date_value),
    "year": FunctionSpec(1, _date_part("year")),
    "month": FunctionSpec(1, _date_part("month")),
    "day": FunctionSpec(1, _date_part("day")),
    "isEmpty": FunctionSpec(1, _is_empty),
    "isNull": FunctionSpec(1, lambda a, _c: _is_nullish(a[0])),
    "isDefined": FunctionSpec(1, lambda a, _c: a[0] is not UNDEFINED),
    "inFolder": FunctionSpec(1, _in_folder),
    "hasTag": FunctionSpec(1, _has_tag),
}


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


def _member(obj: Any, prop: Any, ctx: EvalContext) -> Any:
    if _is_nullish(obj):
        return UNDEFINED
    if isinstance(obj, FileInfo):
        if prop == "body":
            return ctx.body
        return getattr(obj, str(prop), UNDEFINED)
    if isinstance(obj, dict):
        return obj.get(str(prop), UNDEFINED)
    if isinstance(obj, list) and isinstance(prop, (int, float)) and not isinstance(prop, bool):
        index = int(prop)
        return obj[index] if 0 <= index < len(obj) else UNDEFINED
    return UNDEFINED


def evaluate(node: Node, ctx: EvalContext) -> Any:
    """Evaluate *node* against one document's context."""
    match node:
        case Literal(value=value):
            return value
        case Identifier(name=name):
            if name == "file":
                return ctx.file
            if name == "__frontmatter":
                return ctx.frontmatter
            return ctx.frontmatter.get(name, UNDEFINED)
        case Member(object=obj, property=prop, computed=computed):
            key = evaluate(prop, ctx) if computed else prop.name  # type: ignore[union-attr]
            return _member(evaluate(obj, ctx), key, ctx)
        case Logical(operator="&&", left=left, right=right):
            return bool(evaluate(left, ctx)) and bool(evaluate(right, ctx))
        case Logical(operator="||", left=left, right=right):
            return bool(evaluate(left, ctx)) or bool(evaluate(right, ctx))
        case Unary(operator=op, argument=arg):
            value = evaluate(arg, ctx)
            if op == "!":
                return not value
            number = _to_number(value)
            return -number if op == "-" else number
        case Binary(operator=op, left=left, right=right):
            return _binary(op, evaluate(left, ctx), evaluate(right, ctx))
        case Call(name=name, args=args):
            return FUNCTIONS[name].impl([evaluate(a, ctx) for a in args], ctx)
    raise ExpressionError(f"Unknown expression node: {node!r}")


def _binary(op: str, left: Any, right: Any) -> Any:
    match op:
        case "==":
            return values_equal(left, right)
        case "!=":
            return not values_equal(left, right)
        case "<":
            return compare_values(left, right) < 0
        case ">":
            return compare_values(left, right) > 0
        case "<=":
            return compare_values(left, right) <= 0
        case ">=":
            return compare_values(left, right) >= 0
        case "+":
            return _add(left, right)
        case "-":
            return _subtract(left, right)
        case "*":
            return _to_number(left) * _to_number(right)
        case "/":
            divisor = _to_number(right)
            if divisor == 0:
                raise ExpressionError("Division by zero")
            return _to_number(left) / divisor
        case "%":
            divisor = _to_number(right)
            if divisor == 0:
                raise ExpressionError("Division by zero")
            return _to_number(left) % divisor
    raise ExpressionError(f"Unknown operator: {op}")


def matches_expression(text: str, ctx: EvalContext) -> bool:
    """Parse and evaluate *text*, returning its truthiness."""
    return bool(evaluate(parse_expression(text), ctx))


# ---------------------------------------------------------------------------
# Static extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Comparison:
    """A ``field <op> literal`` test found in an expression."""

    field: str
    operator: str
    value: str | None


def _literal_text(node: Node) -> str | None:
    if not isinstance(node, Literal):
        return None
    value = node.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return to_text(value)
    return None


def _field_name(node: Node) -> str | None:
    if isinstance(node, Identifier):
        if node.name in ("file", "__frontmatter"):
            return None
        return node.name
    if isinstance(node, Member) and node.object == Identifier("__frontmatter"):
        if node.computed and isinstance(node.property, Literal) and isinstance(node.property.value, str):
            return node.property.value
        if not node.computed and isinstance(node.property, Identifier):
            return node.property.name
    return None


def extract_comparisons(node: Node) -> list[Comparison]:
    """Flatten the field/literal tests of an AST without evaluating it.

    ``&&``, ``||`` and ``!`` are walked through.  ``'x' == field`` is
    reported as ``field == 'x'``.  Identifier-vs-identifier comparisons
    and calls that do not have a field/value shape are ignored.
    """
    found: list[Comparison] = []

    def walk(current: Node) -> None:
        match current:
            case Logical(left=left, right=right):
                walk(left)
                walk(right)
            case Unary(operator="!", argument=arg):
                walk(arg)
            case Binary(operator=op, left=left, right=right) if op in ("==", "!="):
                name, value = _field_name(left), _literal_text(right)
                if name is None or value is None:
                    name, value = _field_name(right), _literal_text(left)
                if name is not None and value is not None:
                    found.append(Comparison(name, op, value))
            case Call(name="contains", args=(target, needle)):
                name, value = _field_name(target), _literal_text(needle)
                if name is not None and value is not None:
                    found.append(Comparison(name, "contains", value))
            case Call(name="hasTag", args=(tag,)):
                value = _literal_text(tag)
                if value is not None:
                    found.append(Comparison("tags", "hasTag", value))

    walk(node)
    return found


def invalid_durations(node: Node) -> list[str]:
    """Duration literals added to or subtracted from ``today()``/``now()``
    that :func:`parse_duration` rejects, such as ``'7x'``."""
    found: list[str] = []

    def is_clock(current: Node) -> bool:
        return isinstance(current, Call) and current.name in ("today", "now")

    def walk(current: Node) -> None:
        match current:
            case Binary(operator=op, left=left, right=right):
                if op in ("+", "-"):
                    for clock, other in ((left, right), (right, left)):
                        if (
                            is_clock(clock)
                            and isinstance(other, Literal)
                            and isinstance(other.value, str)
                            and parse_duration(other.value) is None
                        ):
                            found.append(other.value)
                walk(left)
                walk(right)
            case Logical(left=left, right=right):
                walk(left)
                walk(right)
            case Unary(argument=arg):
                walk(arg)
            case Member(object=obj, property=prop):
                walk(obj)
                walk(prop)
            case Call(args=args):
                for arg in args:
                    walk(arg)

    walk(node)
    return found


# ---------------------------------------------------------------------------
# Date expressions) (template defaults)
# ---------------------------------------------------------------------------

_DATE_EXPRESSION = re.compile(r"^(today|now)\(\)\s*(?:([+-])\s*'(\d+(?:min|h|d|w|mon|y))')?$")
_DATE_EXPRESSION_START = re.compile(r"^(today|now)\s*\(")


def is_date_expression(value: Any) -> bool:
    return isinstance(value, str) and bool(_DATE_EXPRESSION.match(value.strip()))


def validate_date_expression(value: Any) -> str | None:
    """Error message for a malformed date expression, else None."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if _DATE_EXPRESSION_START.match(text) and not _DATE_EXPRESSION.match(text):
        return (
            f'Invalid date expression: "{value}". '
            "Expected format: today(), today() + '7d', now(), etc."
        )
    return None


def evaluate_date_expression(value: str, *, now: datetime | None = None) -> str | None:
    """``today() + '7d'`` -> ``YYYY-MM-DD``; ``now()`` -> ``YYYY-MM-DD HH:MM``.

    Returns None for strings that are not date expressions.

    Raises:
        ExpressionError: if *value* starts like a date expression but is
            malformed (unbalanced quotes, unknown unit, missing parens).
    """
    error = validate_date_expression(value)
    if error is not None:
        raise ExpressionError(error)
    match = _DATE_EXPRESSION.match(value.strip())
    if not match:
        return None
    func, sign, duration_text = match.groups()
    moment = now or datetime.now()
    if sign and duration_text:
        duration = parse_duration(duration_text)
        if duration is None:
            raise ExpressionError(f'Invalid duration: "{duration_text}"')
        moment = moment + duration if sign == "+" else moment - duration
    if func == "today":
        return moment.date().isoformat()
    return moment.strftime("%Y-%m-%d %H:%M")


def evaluate_template_default(value: Any, *, now: datetime | None = None) -> Any:
    """Resolve date expressions in a schema default; other values pass through."""
    if isinstance(value, str):
        evaluated = evaluate_date_expression(value, now=now)
        if evaluated is not None:
            return evaluated
    return value
