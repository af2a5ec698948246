"""Parse boolean search queries into an AST."""

import re
from dataclasses import dataclass
from importlib import resources
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from lark import Lark, Token as LarkToken, Transformer
from lark.exceptions import UnexpectedCharacters, UnexpectedInput, UnexpectedToken

from .ast_nodes import (
    BinaryOp,
    BinaryOperator,
    FieldSearch,
    Group,
    Node,
    OperatorKind,
    ParsedQuery,
    SearchTerm,
    Token,
    TokenType,
    UnaryOp,
    UnaryOperator,
)
from .errors import ParseErrorKind, QueryParseError

logger = structlog.get_logger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][\w.]*$")

# Lark terminal name -> (token type, operator kind, normalized value)
_OPERATOR_TERMINALS: Dict[str, Tuple[OperatorKind, str]] = {
    "AND": (OperatorKind.BINARY, "AND"),
    "OR": (OperatorKind.BINARY, "OR"),
    "NOT": (OperatorKind.UNARY, "NOT"),
    "MINUS": (OperatorKind.UNARY, "NOT"),
    "PLUS": (OperatorKind.UNARY, "+"),
}

_PLAIN_TERMINALS: Dict[str, TokenType] = {
    "TERM": TokenType.TERM,
    "PHRASE": TokenType.PHRASE,
    "FIELD": TokenType.FIELD,
    "COLON": TokenType.COLON,
    "LPAREN": TokenType.LPAREN,
    "RPAREN": TokenType.RPAREN,
}


def _load_grammar() -> str:
    """Load the Lark grammar from the package resources."""
    return resources.files("record_search.core").joinpath("grammar.lark").read_text()


_lark = Lark(_load_grammar(), parser="lalr", lexer="basic")


def _unquote(raw: str) -> str:
    quote = raw[0]
    body = raw[1:]
    if body.endswith(quote):
        body = body[:-1]
    return body.strip()


class _QueryTransformer(Transformer):
    """Transform the Lark parse tree into AST nodes.

    Empty phrases become ``None``; the parser's cleanup pass removes them.
    """

    def __init__(
        self,
        default_operator: BinaryOperator,
        support_wildcards: bool,
        field_mapping: Dict[str, str],
    ) -> None:
        super().__init__()
        self.default_operator = default_operator
        self.support_wildcards = support_wildcards
        self.field_mapping = field_mapping

    def expression(self, items: List[Any]) -> Optional[Node]:
        left = items[0]
        operator = self.default_operator
        for item in items[1:]:
            if isinstance(item, LarkToken):
                operator = BinaryOperator(_OPERATOR_TERMINALS[item.type][1])
                continue
            left = BinaryOp(operator=operator, left=left, right=item)
            operator = self.default_operator
        return left

    def unary(self, items: List[Any]) -> Optional[Node]:
        op_token, operand = items
        if op_token.type == "PLUS":
            # "+term" marks a required term; it matches exactly like "term"
            return operand
        return UnaryOp(operator=UnaryOperator.NOT, operand=operand)

    def group(self, items: List[Any]) -> Optional[Node]:
        return Group(expression=items[1])

    def field_search(self, items: List[Any]) -> Optional[Node]:
        field_token, _colon, value_token = items
        if value_token.type == "PHRASE":
            value = _unquote(str(value_token))
            exact = True
        else:
            value = str(value_token)
            exact = False
        if not value:
            return None
        return FieldSearch(field=self._map_field(str(field_token)), value=value, exact=exact)

    def search_term(self, items: List[Any]) -> Optional[Node]:
        token = items[0]
        if token.type == "PHRASE":
            value = _unquote(str(token))
            if not value:
                return None
            return SearchTerm(value=value, exact=True, wildcard=False)
        value = str(token)
        return SearchTerm(
            value=value,
            exact=False,
            wildcard=self.support_wildcards and "*" in value,
        )

    def _map_field(self, field_name: str) -> str:
        return self.field_mapping.get(field_name.lower(), field_name)


@dataclass
class ParseOutcome:
    """Non-raising parse result: either ``parsed`` or ``error`` is set."""

    success: bool
    parsed: Optional[ParsedQuery] = None
    error: Optional[QueryParseError] = None


class QueryParser:
    """Tokenizes and parses search queries.

    Supported syntax::

        john*                      wildcard term
        "john doe"                 exact phrase
        status:active              field search
        a AND b, a && b, a b       conjunction (adjacency uses the default operator)
        a OR b, a || b             disjunction
        NOT a, !a, -a              negation
        +a                         required term (same as a)
        (a OR b) AND c             grouping

    AND and OR have equal precedence and associate left to right, so
    ``a OR b AND c`` parses as ``(a OR b) AND c``.
    """

    def __init__(
        self,
        default_operator: str = "AND",
        min_term_length: int = 1,
        max_terms: int = 50,
        support_wildcards: bool = True,
        field_mapping: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize the parser.

        Args:
            default_operator: Operator joining adjacent terms ("AND" or "OR")
            min_term_length: Minimum length of a non-wildcard term
            max_terms: Maximum number of leaf terms in a query
            support_wildcards: Whether "*" in a bare term marks it wildcard
            field_mapping: Aliases for field names (matched case-insensitively)
        """
        self.default_operator = BinaryOperator(default_operator.upper())
        self.min_term_length = min_term_length
        self.max_terms = max_terms
        self.support_wildcards = support_wildcards
        self.field_mapping = {k.lower(): v for k, v in (field_mapping or {}).items()}
        self._transformer = _QueryTransformer(
            self.default_operator, self.support_wildcards, self.field_mapping
        )

    def parse(self, query: str) -> ParsedQuery:
        """
        Parse a query string into a ParsedQuery.

        Args:
            query: The search query to parse

        Returns:
            ParsedQuery with the optimized AST, tokens, term count and complexity

        Raises:
            QueryParseError: If the query is empty or not valid syntax
        """
        if not isinstance(query, str) or not query.strip():
            raise QueryParseError(ParseErrorKind.EMPTY_QUERY, "Empty query")

        text = query.strip()
        tokens = self.tokenize(text)
        self._check_parentheses(tokens)

        try:
            tree = _lark.parse(text)
        except UnexpectedInput as exc:
            raise self._translate_error(exc, text) from exc

        ast = remove_empty_nodes(self._transformer.transform(tree))
        if ast is None:
            raise QueryParseError(ParseErrorKind.EMPTY_QUERY, "Empty query")

        complexity = calculate_complexity(ast)
        ast = collapse_groups(ast)
        self._validate_term_lengths(ast)
        term_count = count_terms(ast)
        if term_count > self.max_terms:
            raise QueryParseError(
                ParseErrorKind.TOO_MANY_TERMS,
                f"Too many search terms (max: {self.max_terms})",
            )

        return ParsedQuery(
            ast=ast,
            original_query=query,
            tokens=tokens,
            term_count=term_count,
            complexity=complexity,
        )

    def try_parse(self, query: str) -> ParseOutcome:
        """Parse without raising; errors are returned in the outcome."""
        try:
            return ParseOutcome(success=True, parsed=self.parse(query))
        except QueryParseError as exc:
            logger.info("Query parse failed", query=query, kind=exc.kind.value, error=exc.message)
            return ParseOutcome(success=False, error=exc)

    def tokenize(self, query: str) -> List[Token]:
        """
        Split a query string into tokens.

        Args:
            query: Search query

        Returns:
            List of tokens in source order

        Raises:
            QueryParseError: If a character cannot start any token
        """
        tokens: List[Token] = []
        try:
            for raw in _lark.lex(query):
                tokens.append(self._convert_token(raw))
        except UnexpectedCharacters as exc:
            raise QueryParseError(
                ParseErrorKind.UNEXPECTED_TOKEN,
                f"Unexpected character: {exc.char!r}",
                token=exc.char,
                position=exc.pos_in_stream,
            ) from exc
        return tokens

    def _convert_token(self, raw: LarkToken) -> Token:
        if raw.type in _OPERATOR_TERMINALS:
            kind, value = _OPERATOR_TERMINALS[raw.type]
            return Token(TokenType.OPERATOR, value, subtype=kind, position=raw.start_pos)
        token_type = _PLAIN_TERMINALS[raw.type]
        value = _unquote(str(raw)) if token_type is TokenType.PHRASE else str(raw)
        return Token(token_type, value, position=raw.start_pos)

    def _check_parentheses(self, tokens: Sequence[Token]) -> None:
        open_positions: List[Optional[int]] = []
        previous: Optional[Token] = None
        for token in tokens:
            if (
                token.type is TokenType.RPAREN
                and previous is not None
                and previous.type is TokenType.LPAREN
            ):
                raise QueryParseError(
                    ParseErrorKind.EMPTY_QUERY,
                    "Empty group",
                    token="()",
                    position=previous.position,
                )
            previous = token
            if token.type is TokenType.LPAREN:
                open_positions.append(token.position)
            elif token.type is TokenType.RPAREN:
                if not open_positions:
                    raise QueryParseError(
                        ParseErrorKind.UNMATCHED_PARENTHESIS,
                        "Unmatched closing parenthesis",
                        token=")",
                        position=token.position,
                    )
                open_positions.pop()
        if open_positions:
            raise QueryParseError(
                ParseErrorKind.UNMATCHED_PARENTHESIS,
                "Missing closing parenthesis",
                token="(",
                position=open_positions[-1],
            )

    def _translate_error(self, exc: UnexpectedInput, text: str) -> QueryParseError:
        if isinstance(exc, UnexpectedToken):
            token = exc.token
            expected = set(exc.expected or ())
            at_end = token.type == "$END"
            position = len(text) if at_end else token.start_pos
            if expected and expected <= {"TERM", "PHRASE"}:
                return QueryParseError(
                    ParseErrorKind.MISSING_FIELD_VALUE,
                    "Expected value after field:",
                    token=None if at_end else str(token),
                    position=position,
                )
            if at_end:
                return QueryParseError(
                    ParseErrorKind.UNEXPECTED_TOKEN,
                    "Unexpected end of query",
                    position=position,
                )
            return QueryParseError(
                ParseErrorKind.UNEXPECTED_TOKEN,
                f"Unexpected token: {token}",
                token=str(token),
                position=position,
            )
        if isinstance(exc, UnexpectedCharacters):
            return QueryParseError(
                ParseErrorKind.UNEXPECTED_TOKEN,
                f"Unexpected character: {exc.char!r}",
                token=exc.char,
                position=exc.pos_in_stream,
            )
        return QueryParseError(ParseErrorKind.UNEXPECTED_TOKEN, str(exc))

    def _validate_term_lengths(self, node: Node) -> None:
        for leaf in iter_leaves(node):
            if len(leaf.value) < self.min_term_length and "*" not in leaf.value:
                raise QueryParseError(
                    ParseErrorKind.TERM_TOO_SHORT,
                    f'Search term too short: "{leaf.value}" (min: {self.min_term_length})',
                    token=leaf.value,
                )


def remove_empty_nodes(node: Optional[Node]) -> Optional[Node]:
    """Drop empty sub-trees, promoting the surviving side of binary nodes."""
    if node is None:
        return None
    if isinstance(node, (SearchTerm, FieldSearch)):
        return node
    if isinstance(node, BinaryOp):
        left = remove_empty_nodes(node.left)
        right = remove_empty_nodes(node.right)
        if left is None:
            return right
        if right is None:
            return left
        return BinaryOp(operator=node.operator, left=left, right=right)
    if isinstance(node, UnaryOp):
        operand = remove_empty_nodes(node.operand)
        return None if operand is None else UnaryOp(operator=node.operator, operand=operand)
    if isinstance(node, Group):
        expression = remove_empty_nodes(node.expression)
        return None if expression is None else Group(expression=expression)
    raise TypeError(f"Unknown AST node: {node!r}")


def collapse_groups(node: Node) -> Node:
    """Replace every group with its single child expression."""
    if isinstance(node, (SearchTerm, FieldSearch)):
        return node
    if isinstance(node, Group):
        return collapse_groups(node.expression)
    if isinstance(node, BinaryOp):
        return BinaryOp(
            operator=node.operator,
            left=collapse_groups(node.left),
            right=collapse_groups(node.right),
        )
    if isinstance(node, UnaryOp):
        return UnaryOp(operator=node.operator, operand=collapse_groups(node.operand))
    raise TypeError(f"Unknown AST node: {node!r}")


def iter_leaves(node: Node):
    """Yield every SearchTerm and FieldSearch in left-to-right order."""
    if isinstance(node, (SearchTerm, FieldSearch)):
        yield node
    elif isinstance(node, BinaryOp):
        yield from iter_leaves(node.left)
        yield from iter_leaves(node.right)
    elif isinstance(node, UnaryOp):
        yield from iter_leaves(node.operand)
    elif isinstance(node, Group):
        yield from iter_leaves(node.expression)
    else:
        raise TypeError(f"Unknown AST node: {node!r}")


def positive_terms(node: Node, negated: bool = False) -> List[str]:
    """Values of SearchTerm leaves that are not under an odd number of NOTs."""
    if isinstance(node, SearchTerm):
        return [] if negated else [node.value]
    if isinstance(node, FieldSearch):
        return []
    if isinstance(node, BinaryOp):
        return positive_terms(node.left, negated) + positive_terms(node.right, negated)
    if isinstance(node, UnaryOp):
        return positive_terms(node.operand, not negated)
    if isinstance(node, Group):
        return positive_terms(node.expression, negated)
    raise TypeError(f"Unknown AST node: {node!r}")


def count_terms(node: Node) -> int:
    return sum(1 for _ in iter_leaves(node))


def calculate_complexity(node: Node) -> float:
    """Weighted size of the tree: leaf 1, binary 2, unary 1.5, group 1.2."""
    if isinstance(node, (SearchTerm, FieldSearch)):
        return 1.0
    if isinstance(node, BinaryOp):
        return 2.0 + calculate_complexity(node.left) + calculate_complexity(node.right)
    if isinstance(node, UnaryOp):
        return 1.5 + calculate_complexity(node.operand)
    if isinstance(node, Group):
        return 1.2 + calculate_complexity(node.expression)
    raise TypeError(f"Unknown AST node: {node!r}")


def to_sql(node: Node, search_columns: Sequence[str] = ("userId",)) -> Tuple[str, List[Any]]:
    """
    Render an AST as a parameterized SQL WHERE fragment.

    Args:
        node: Parsed query AST
        search_columns: Columns that bare terms are matched against

    Returns:
        Tuple of (where_clause, params) using "?" placeholders

    Raises:
        ValueError: If a field or column name is not a plain identifier
    """
    for column in search_columns:
        _check_identifier(column)
    params: List[Any] = []
    clause = _node_to_sql(node, list(search_columns), params)
    return clause, params


def _node_to_sql(node: Node, columns: List[str], params: List[Any]) -> str:
    if isinstance(node, SearchTerm):
        if node.exact:
            conditions = [f"{column} = ?" for column in columns]
            params.extend([node.value] * len(columns))
        elif node.wildcard:
            pattern = node.value.replace("*", "%")
            conditions = [f"{column} LIKE ?" for column in columns]
            params.extend([pattern] * len(columns))
        else:
            conditions = [f"{column} LIKE ?" for column in columns]
            params.extend([f"%{node.value}%"] * len(columns))
        if len(conditions) == 1:
            return conditions[0]
        return "(" + " OR ".join(conditions) + ")"
    if isinstance(node, FieldSearch):
        _check_identifier(node.field)
        if node.exact:
            params.append(node.value)
            return f"{node.field} = ?"
        params.append(f"%{node.value}%")
        return f"{node.field} LIKE ?"
    if isinstance(node, BinaryOp):
        left = _node_to_sql(node.left, columns, params)
        right = _node_to_sql(node.right, columns, params)
        return f"({left} {node.operator.value} {right})"
    if isinstance(node, UnaryOp):
        return f"NOT ({_node_to_sql(node.operand, columns, params)})"
    if isinstance(node, Group):
        return f"({_node_to_sql(node.expression, columns, params)})"
    raise TypeError(f"Unknown AST node: {node!r}")


def _check_identifier(name: str) -> None:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
