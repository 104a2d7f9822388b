"""
Closed expression set for calculate transforms.

Transforms are built from a handful of operators (field reference, literal,
indexing, concatenation, arithmetic, unit conversion) instead of free-form
expression text. Each expression can:

- render itself as a Vega expression string (``to_expr``)
- report the datum fields it reads (``fields``)
- evaluate against a record in Python (``evaluate``)

``parse_expression`` accepts the same subset back from text so that stored
declarative documents can be reloaded.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from chartpipe.errors import SpecBuildError

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}


class Expr:
    """Base class for transform expressions."""

    def to_expr(self) -> str:
        raise NotImplementedError

    def fields(self) -> Set[str]:
        raise NotImplementedError

    def evaluate(self, record: Dict[str, Any]) -> Any:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.to_expr()


@dataclass(frozen=True)
class Field(Expr):
    name: str

    def to_expr(self) -> str:
        if _IDENTIFIER.match(self.name):
            return f"datum.{self.name}"
        return f"datum[{json.dumps(self.name, ensure_ascii=False)}]"

    def fields(self) -> Set[str]:
        return {self.name}

    def evaluate(self, record: Dict[str, Any]) -> Any:
        return record.get(self.name)


@dataclass(frozen=True)
class Lit(Expr):
    value: Union[str, int, float]

    def to_expr(self) -> str:
        return json.dumps(self.value, ensure_ascii=False)

    def fields(self) -> Set[str]:
        return set()

    def evaluate(self, record: Dict[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Index(Expr):
    """Character (or element) access: ``datum.Origin[0]``."""
    base: Expr
    index: int

    def to_expr(self) -> str:
        return f"{_wrap(self.base)}[{self.index}]"

    def fields(self) -> Set[str]:
        return self.base.fields()

    def evaluate(self, record: Dict[str, Any]) -> Any:
        value = self.base.evaluate(record)
        if value is None:
            return None
        try:
            return value[self.index]
        except (IndexError, TypeError, KeyError):
            return None


@dataclass(frozen=True, init=False)
class Concat(Expr):
    parts: Tuple[Expr, ...]

    def __init__(self, *parts: Expr):
        object.__setattr__(self, "parts", tuple(parts))

    def to_expr(self) -> str:
        return " + ".join(_wrap(p) for p in self.parts)

    def fields(self) -> Set[str]:
        out: Set[str] = set()
        for p in self.parts:
            out |= p.fields()
        return out

    def evaluate(self, record: Dict[str, Any]) -> Any:
        return "".join("" if v is None else _to_str(v) for v in (p.evaluate(record) for p in self.parts))


@dataclass(frozen=True)
class Arith(Expr):
    op: str
    left: Expr
    right: Expr

    def __post_init__(self):
        if self.op not in _PRECEDENCE:
            raise SpecBuildError(f"Unsupported operator: {self.op}")

    def to_expr(self) -> str:
        prec = _PRECEDENCE[self.op]
        left = self.left.to_expr()
        right = self.right.to_expr()
        if _needs_parens(self.left, prec, right_side=False):
            left = f"({left})"
        if _needs_parens(self.right, prec, right_side=True):
            right = f"({right})"
        return f"{left} {self.op} {right}"

    def fields(self) -> Set[str]:
        return self.left.fields() | self.right.fields()

    def evaluate(self, record: Dict[str, Any]) -> Any:
        a = self.left.evaluate(record)
        b = self.right.evaluate(record)
        if a is None or b is None:
            return None
        # JavaScript semantics: "+" with a string operand concatenates
        if self.op == "+" and (isinstance(a, str) or isinstance(b, str)):
            return _to_str(a) + _to_str(b)
        x, y = _to_number(a), _to_number(b)
        if x is None or y is None:
            return None
        if self.op == "+":
            return x + y
        if self.op == "-":
            return x - y
        if self.op == "*":
            return x * y
        if y == 0:
            return None
        return x / y


@dataclass(frozen=True)
class Convert(Expr):
    """Linear unit conversion: ``value * factor + offset``."""
    base: Expr
    factor: float
    offset: float = 0.0

    def to_expr(self) -> str:
        text = f"{_wrap(self.base)} * {_num(self.factor)}"
        if self.offset:
            text += f" + {_num(self.offset)}"
        return text

    def fields(self) -> Set[str]:
        return self.base.fields()

    def evaluate(self, record: Dict[str, Any]) -> Any:
        value = _to_number(self.base.evaluate(record))
        if value is None:
            return None
        return value * self.factor + self.offset


def field(name: str) -> Field:
    return Field(name)


def lit(value: Union[str, int, float]) -> Lit:
    return Lit(value)


def initials(name: str, count: int = 2) -> Expr:
    """Concatenate the first ``count`` characters of a string field."""
    base = Field(name)
    parts = [Index(base, i) for i in range(count)]
    expr: Expr = parts[0]
    for part in parts[1:]:
        expr = Arith("+", expr, part)
    return expr


def percent_to_fraction(name: str) -> Convert:
    return Convert(Field(name), 0.01)


def _needs_parens(child: Expr, prec: int, right_side: bool) -> bool:
    if isinstance(child, Arith):
        child_prec = _PRECEDENCE[child.op]
        return child_prec < prec or (right_side and child_prec == prec)
    return isinstance(child, (Concat, Convert))


def _wrap(expr: Expr) -> str:
    if isinstance(expr, (Arith, Concat, Convert)):
        return f"({expr.to_expr()})"
    return expr.to_expr()


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _to_str(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Parser for the same subset
# ---------------------------------------------------------------------------

_TOKEN = re.compile(
    r"\s*(?:"
    r"(?P<number>\d+(?:\.\d*)?|\.\d+)"
    r"|(?P<string>\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')"
    r"|(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)"
    r"|(?P<op>[-+*/.\[\]()])"
    r")"
)


def _tokenize(text: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN.match(text, pos)
        if not m or m.end() == pos:
            raise SpecBuildError(f"Unsupported expression syntax at {pos}: {text!r}")
        kind = m.lastgroup
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


class _Parser:

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self, value: Optional[str] = None) -> Tuple[str, str]:
        tok = self.peek()
        if tok is None or (value is not None and tok[1] != value):
            raise SpecBuildError(f"Expected {value or 'token'} in expression: {self.text!r}")
        self.pos += 1
        return tok

    def parse(self) -> Expr:
        expr = self.additive()
        if self.peek() is not None:
            raise SpecBuildError(f"Unexpected '{self.peek()[1]}' in expression: {self.text!r}")
        return expr

    def additive(self) -> Expr:
        expr = self.multiplicative()
        while self.peek() and self.peek()[1] in ("+", "-"):
            op = self.take()[1]
            expr = Arith(op, expr, self.multiplicative())
        return expr

    def multiplicative(self) -> Expr:
        expr = self.unary()
        while self.peek() and self.peek()[1] in ("*", "/"):
            op = self.take()[1]
            expr = Arith(op, expr, self.unary())
        return expr

    def unary(self) -> Expr:
        tok = self.peek()
        if tok and tok[1] == "-":
            self.take()
            operand = self.unary()
            if isinstance(operand, Lit) and isinstance(operand.value, (int, float)):
                return Lit(-operand.value)
            return Arith("-", Lit(0), operand)
        return self.postfix()

    def postfix(self) -> Expr:
        expr = self.primary()
        while self.peek() and self.peek()[1] in (".", "["):
            tok = self.take()
            if tok[1] == ".":
                kind, name = self.take()
                if kind != "name" or not _is_datum(expr):
                    raise SpecBuildError(f"Only datum fields support '.' access: {self.text!r}")
                expr = Field(name)
            else:
                kind, value = self.take()
                self.take("]")
                if _is_datum(expr):
                    if kind != "string":
                        raise SpecBuildError(f"datum[...] needs a string field name: {self.text!r}")
                    expr = Field(_unquote(value))
                elif kind == "number" and "." not in value:
                    expr = Index(expr, int(value))
                else:
                    raise SpecBuildError(f"Unsupported index '{value}' in expression: {self.text!r}")
        if _is_datum(expr):
            raise SpecBuildError(f"Bare 'datum' is not a value: {self.text!r}")
        return expr

    def primary(self) -> Expr:
        kind, value = self.take()
        if kind == "number":
            number = float(value)
            return Lit(int(number) if number.is_integer() and "." not in value else number)
        if kind == "string":
            return Lit(_unquote(value))
        if kind == "name" and value == "datum":
            return _DATUM
        if value == "(":
            expr = self.additive()
            self.take(")")
            return expr
        raise SpecBuildError(f"Unsupported token '{value}' in expression: {self.text!r}")


class _Datum(Expr):
    """Placeholder for the bare ``datum`` identifier during parsing."""

    def to_expr(self) -> str:
        return "datum"


_DATUM = _Datum()


def _is_datum(expr: Expr) -> bool:
    return expr is _DATUM


def _unquote(token: str) -> str:
    if token.startswith("'"):
        token = '"' + token[1:-1].replace('\\"', '"').replace('"', '\\"') + '"'
    return json.loads(token)


def parse_expression(text: str) -> Expr:
    """
    Parse a Vega expression restricted to the supported operator set.

    Raises:
        SpecBuildError: If the text uses anything outside the subset
    """
    if not text or not text.strip():
        raise SpecBuildError("Empty expression")
    return _Parser(text).parse()
