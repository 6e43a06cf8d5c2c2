"""Rule condition language.

Conditions are small boolean expressions compiled to an AST and interpreted
directly. Nothing is handed to ``eval``; the grammar is closed:

    expr     := or
    or       := and ("||" and)*
    and      := unary ("&&" unary)*
    unary    := "!" unary | compare
    compare  := primary (("==" | "!=" | "===" | "!==") primary)?
    primary  := call | path | STRING | "true" | "false" | "null" | "(" expr ")"
    call     := IDENT "(" [literal] ")"
    path     := IDENT ("." IDENT)*

Supported:
- Predicates: hasApproval("dev"), isHighRisk(), isReadOnly(), isDeprecated()
- Paths: metadata.<field>, approvals.<slot>.<field>, filePath
- Literals: strings, true, false, null
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Union

from pydantic import BaseModel

from aimem.domain.errors import ConditionEvalError, ConditionSyntaxError
from aimem.domain.models.approval_status import ApprovalSlot, ApprovalStatus
from aimem.domain.models.metadata import AIMetadata

# Token types - ORDER MATTERS (longer operators first)
TOKEN_TYPES = [
    ("STRING", r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\''),
    ("OP", r"===|!==|==|!=|&&|\|\||!"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("DOT", r"\."),
    ("IDENT", r"[A-Za-z_$][A-Za-z0-9_$]*"),
    ("WHITESPACE", r"\s+"),
    ("MISMATCH", r"."),
]

TOKEN_REGEX = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_TYPES))

_KEYWORDS = {"true": True, "false": False, "null": None}
_EQUALITY_OPS = {"==": False, "===": False, "!=": True, "!==": True}  # op -> negated
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

# Maximum nesting of parentheses and negations in one condition
MAX_CONDITION_DEPTH = 64


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class PathRef:
    parts: tuple[str, ...]


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple[Any, ...]


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class And:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Or:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Compare:
    left: "Node"
    right: "Node"
    negated: bool


Node = Union[Literal, PathRef, Call, Not, And, Or, Compare]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def tokenize(source: str) -> list[tuple[str, str]]:
    """Tokenize a condition into (type, value) pairs."""
    tokens = []
    for match in TOKEN_REGEX.finditer(source):
        token_type = match.lastgroup
        value = match.group()
        if token_type == "WHITESPACE":
            continue
        if token_type == "MISMATCH":
            raise ConditionSyntaxError(f"Unexpected character {value!r} at offset {match.start()}")
        tokens.append((token_type, value))
    return tokens


def _unescape(raw: str) -> str:
    return re.sub(r"\\(.)", r"\1", raw[1:-1])


class _Parser:
    """Recursive descent parser producing the condition AST."""

    def __init__(self, tokens: list[tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self) -> tuple[str, str] | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def consume(self) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise ConditionSyntaxError("Unexpected end of condition")
        self.pos += 1
        return token

    def expect(self, token_type: str) -> tuple[str, str]:
        token = self.consume()
        if token[0] != token_type:
            raise ConditionSyntaxError(f"Expected {token_type}, got {token[1]!r}")
        return token

    def _descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_CONDITION_DEPTH:
            raise ConditionSyntaxError(f"Condition nests deeper than {MAX_CONDITION_DEPTH} levels")

    def _at_op(self, *ops: str) -> bool:
        token = self.peek()
        return token is not None and token[0] == "OP" and token[1] in ops

    def parse(self) -> Node:
        if not self.tokens:
            raise ConditionSyntaxError("Empty condition")
        node = self.parse_or()
        if self.peek() is not None:
            raise ConditionSyntaxError(f"Unexpected token {self.peek()[1]!r}")
        return node

    def parse_or(self) -> Node:
        left = self.parse_and()
        while self._at_op("||"):
            self.consume()
            left = Or(left, self.parse_and())
        return left

    def parse_and(self) -> Node:
        left = self.parse_unary()
        while self._at_op("&&"):
            self.consume()
            left = And(left, self.parse_unary())
        return left

    def parse_unary(self) -> Node:
        if self._at_op("!"):
            self.consume()
            self._descend()
            node = Not(self.parse_unary())
            self.depth -= 1
            return node
        return self.parse_compare()

    def parse_compare(self) -> Node:
        left = self.parse_primary()
        if self._at_op(*_EQUALITY_OPS):
            op = self.consume()[1]
            right = self.parse_primary()
            return Compare(left, right, negated=_EQUALITY_OPS[op])
        return left

    def parse_primary(self) -> Node:
        token_type, value = self.consume()

        if token_type == "LPAREN":
            self._descend()
            node = self.parse_or()
            self.expect("RPAREN")
            self.depth -= 1
            return node

        if token_type == "STRING":
            return Literal(_unescape(value))

        if token_type == "IDENT":
            if value in _KEYWORDS:
                return Literal(_KEYWORDS[value])
            next_token = self.peek()
            if next_token is not None and next_token[0] == "LPAREN":
                return self._parse_call(value)
            return self._parse_path(value)

        raise ConditionSyntaxError(f"Unexpected token {value!r}")

    def _parse_call(self, name: str) -> Call:
        self.expect("LPAREN")
        args: list[Any] = []
        token = self.peek()
        if token is not None and token[0] != "RPAREN":
            arg = self.parse_primary()
            if not isinstance(arg, Literal):
                raise ConditionSyntaxError(f"{name}() only accepts a literal argument")
            args.append(arg.value)
        self.expect("RPAREN")
        return Call(name, tuple(args))

    def _parse_path(self, root: str) -> PathRef:
        parts = [root]
        while self.peek() is not None and self.peek()[0] == "DOT":
            self.consume()
            parts.append(self.expect("IDENT")[1])
        return PathRef(tuple(parts))


@lru_cache(maxsize=256)
def compile_condition(source: str) -> Node:
    """Parse a condition string into its AST.

    Raises:
        ConditionSyntaxError: If the source does not match the grammar.
    """
    return _Parser(tokenize(source)).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConditionContext:
    """Read-only data a condition may refer to."""

    metadata: AIMetadata
    approvals: ApprovalStatus | None
    file_path: str

    def has_approval(self, slot: str) -> bool:
        if self.approvals is None:
            return False
        try:
            return self.approvals.is_approved(slot)
        except ValueError:
            return False

    def functions(self) -> dict[str, Callable[..., bool]]:
        return {
            "hasApproval": self.has_approval,
            "isHighRisk": lambda: self.metadata.is_high_risk,
            "isReadOnly": lambda: self.metadata.is_read_only,
            "isDeprecated": lambda: self.metadata.is_deprecated,
        }

    def roots(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata,
            "approvals": self.approvals if self.approvals is not None else ApprovalStatus(),
            "filePath": self.file_path,
        }


def _attribute(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    if isinstance(obj, ApprovalStatus) and name.endswith("Approved"):
        # Legacy flat names such as approvals.devApproved
        try:
            return obj.is_approved(name)
        except ValueError:
            return None
    if isinstance(obj, BaseModel):
        fields = type(obj).model_fields
        snake = _CAMEL_BOUNDARY.sub(r"_\1", name).lower()
        for candidate in (name, snake):
            if candidate in fields:
                return getattr(obj, candidate)
        for field_name, info in fields.items():
            if info.alias == name:
                return getattr(obj, field_name)
    return None


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def evaluate(node: Node, context: ConditionContext) -> Any:
    """Interpret ``node`` against ``context``.

    Raises:
        ConditionEvalError: For unknown functions, unknown path roots or bad arity.
    """
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, PathRef):
        roots = context.roots()
        root = node.parts[0]
        if root not in roots:
            raise ConditionEvalError(f"Unknown name '{root}'")
        value = roots[root]
        for part in node.parts[1:]:
            value = _attribute(value, part)
        return _plain(value)

    if isinstance(node, Call):
        functions = context.functions()
        if node.name not in functions:
            raise ConditionEvalError(f"Unknown function '{node.name}'")
        try:
            return functions[node.name](*node.args)
        except TypeError as e:
            raise ConditionEvalError(f"Bad call to {node.name}(): {e}") from e

    if isinstance(node, Not):
        return not evaluate(node.operand, context)

    if isinstance(node, And):
        return bool(evaluate(node.left, context)) and bool(evaluate(node.right, context))

    if isinstance(node, Or):
        return bool(evaluate(node.left, context)) or bool(evaluate(node.right, context))

    if isinstance(node, Compare):
        equal = _plain(evaluate(node.left, context)) == _plain(evaluate(node.right, context))
        return not equal if node.negated else equal

    raise ConditionEvalError(f"Unsupported node {node!r}")


def evaluate_condition(source: str, context: ConditionContext) -> bool:
    """Compile (cached) and evaluate a condition string to a boolean.

    Raises:
        ConditionSyntaxError: If the source does not match the grammar.
        ConditionEvalError: If the condition cannot be evaluated.
    """
    node = compile_condition(source)
    try:
        return bool(evaluate(node, context))
    except RecursionError as e:
        # Long && or || chains build deep left-leaning trees
        raise ConditionEvalError("Condition is too deeply nested to evaluate") from e
