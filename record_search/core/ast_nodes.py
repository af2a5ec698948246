"""Token and AST data classes for parsed search queries."""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class TokenType(str, Enum):
    """Lexical categories produced by the tokenizer."""

    TERM = "TERM"
    PHRASE = "PHRASE"
    FIELD = "FIELD"
    COLON = "COLON"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    OPERATOR = "OPERATOR"


class OperatorKind(str, Enum):
    """Arity of an OPERATOR token."""

    BINARY = "BINARY"
    UNARY = "UNARY"


class BinaryOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class UnaryOperator(str, Enum):
    NOT = "NOT"


@dataclass(frozen=True)
class Token:
    """A single lexical token.

    ``value`` holds the normalized operator name for OPERATOR tokens
    (``AND``, ``OR``, ``NOT`` or ``+``) and the unquoted text for PHRASE
    tokens.
    """

    type: TokenType
    value: str
    subtype: Optional[OperatorKind] = None
    position: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "value": self.value,
            "subtype": self.subtype.value if self.subtype else None,
            "position": self.position,
        }


@dataclass(frozen=True)
class SearchTerm:
    """A bare word or quoted phrase matched against the search fields."""

    value: str
    exact: bool = False
    wildcard: bool = False


@dataclass(frozen=True)
class FieldSearch:
    """A ``field:value`` restriction on a single record field."""

    field: str
    value: str
    exact: bool = False


@dataclass(frozen=True)
class BinaryOp:
    operator: BinaryOperator
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class UnaryOp:
    operator: UnaryOperator
    operand: "Node"


@dataclass(frozen=True)
class Group:
    """A parenthesized sub-expression."""

    expression: "Node"


Node = Union[SearchTerm, FieldSearch, BinaryOp, UnaryOp, Group]

LEAF_TYPES = (SearchTerm, FieldSearch)
NODE_TYPES = (SearchTerm, FieldSearch, BinaryOp, UnaryOp, Group)


def node_to_dict(node: Node) -> Dict[str, Any]:
    """Render an AST as nested dictionaries tagged with the node type."""
    if not isinstance(node, NODE_TYPES):
        raise TypeError(f"Unknown AST node: {node!r}")
    data: Dict[str, Any] = {"type": type(node).__name__}
    for node_field in fields(node):
        value = getattr(node, node_field.name)
        if isinstance(value, NODE_TYPES):
            value = node_to_dict(value)
        elif isinstance(value, Enum):
            value = value.value
        data[node_field.name] = value
    return data


@dataclass
class ParsedQuery:
    """Successful parse output.

    ``complexity`` is informational only and never affects evaluation.
    """

    ast: Node
    original_query: str
    tokens: List[Token] = field(default_factory=list)
    term_count: int = 0
    complexity: float = 0.0
