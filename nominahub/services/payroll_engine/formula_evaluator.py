"""
NominaHub - Formula Evaluator

Concept formulas are small arithmetic expressions over named variables:

    SALARIO_DIARIO * DIAS_VACACIONES * 0.25
    MAX(0, SBC_DIARIO - 3 * UMA_DIARIA) * DIAS_PERIODO * 0.004
    MAX(TABLA_ISR(BASE_GRAVABLE) - SUBSIDIO_EMPLEO(BASE_GRAVABLE), 0)

Grammar (recursive descent, no comparisons):

    expr    := term (('+' | '-') term)*
    term    := unary (('*' | '/') unary)*
    unary   := ('+' | '-') unary | primary
    primary := NUMBER | NAME | NAME '(' expr (',' expr)* ')' | '(' expr ')'

'×', '÷' and the unicode minus sign are accepted as operators. Variable
names are case-sensitive; MIN and MAX are not. Any other function name is
dispatched to the tax table functions supplied at evaluation time.

A formula is parsed once into an immutable tree (compile_formula) and can
then be evaluated any number of times. Arithmetic runs in Decimal at 28
significant digits and the result is rounded to cents once, at the end.

Parentheses, calls and signs nest at most MAX_NESTING levels, and the
parsed tree may be at most MAX_DEPTH nodes deep; deeper formulas are
syntax errors.
"""

from dataclasses import dataclass
from decimal import Decimal, localcontext
from functools import lru_cache
from typing import Callable, FrozenSet, List, Mapping, Optional, Tuple

from nominahub.utils.error_handling import (
    DivisionByZeroError,
    FormulaSyntaxError,
    PayrollError,
    UnknownFunctionError,
    UnknownVariableError,
)
from nominahub.utils.money import round_currency

PRECISION = 28
BUILTIN_FUNCTIONS = frozenset({"MIN", "MAX"})
MAX_NESTING = 64
MAX_DEPTH = 256

_DIGITS = "0123456789"
_OPERATOR_ALIASES = {"×": "*", "÷": "/", "−": "-"}


# ===========================================
# TOKENIZER
# ===========================================

@dataclass(frozen=True)
class Token:
    kind: str  # NUMBER, NAME, OP, LPAREN, RPAREN, COMMA, END
    text: str
    position: int


def _is_name_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def _is_name_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def is_valid_name(text: str) -> bool:
    """True if `text` can be used as a variable name in a formula."""
    return (
        bool(text)
        and _is_name_start(text[0])
        and all(_is_name_char(char) for char in text)
    )


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    length = len(source)

    while i < length:
        char = source[i]

        if char.isspace():
            i += 1
            continue

        if char in _DIGITS or (char == "." and i + 1 < length and source[i + 1] in _DIGITS):
            start = i
            seen_dot = False
            while i < length and (source[i] in _DIGITS or (source[i] == "." and not seen_dot)):
                if source[i] == ".":
                    seen_dot = True
                i += 1
            if i < length and _is_name_start(source[i]):
                raise FormulaSyntaxError(source, i, f"unexpected '{source[i]}' after number")
            tokens.append(Token("NUMBER", source[start:i], start))
            continue

        if _is_name_start(char):
            start = i
            while i < length and _is_name_char(source[i]):
                i += 1
            tokens.append(Token("NAME", source[start:i], start))
            continue

        op = _OPERATOR_ALIASES.get(char, char)
        if op in "+-*/":
            tokens.append(Token("OP", op, i))
        elif char == "(":
            tokens.append(Token("LPAREN", char, i))
        elif char == ")":
            tokens.append(Token("RPAREN", char, i))
        elif char == ",":
            tokens.append(Token("COMMA", char, i))
        else:
            raise FormulaSyntaxError(source, i, f"unexpected character '{char}'")
        i += 1

    tokens.append(Token("END", "", length))
    return tokens


# ===========================================
# EXPRESSION TREE
# ===========================================

class _Evaluation:
    """State for one evaluation of one formula."""

    def __init__(
        self,
        source: str,
        context: Mapping[str, Decimal],
        functions: Mapping[str, Callable[..., Decimal]],
        concept: Optional[str],
    ):
        self.source = source
        self.context = context
        self.functions = functions
        self.concept = concept


@dataclass(frozen=True)
class Number:
    value: Decimal

    def evaluate(self, ev: _Evaluation) -> Decimal:
        return self.value

    def names(self) -> FrozenSet[str]:
        return frozenset()

    def calls(self) -> FrozenSet[Tuple[str, int]]:
        return frozenset()


@dataclass(frozen=True)
class Variable:
    name: str

    def evaluate(self, ev: _Evaluation) -> Decimal:
        try:
            return ev.context[self.name]
        except KeyError:
            raise UnknownVariableError(self.name, ev.concept) from None

    def names(self) -> FrozenSet[str]:
        return frozenset({self.name})

    def calls(self) -> FrozenSet[Tuple[str, int]]:
        return frozenset()


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: object

    def evaluate(self, ev: _Evaluation) -> Decimal:
        value = self.operand.evaluate(ev)
        return -value if self.op == "-" else +value

    def names(self) -> FrozenSet[str]:
        return self.operand.names()

    def calls(self) -> FrozenSet[Tuple[str, int]]:
        return self.operand.calls()


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: object
    right: object

    def evaluate(self, ev: _Evaluation) -> Decimal:
        left = self.left.evaluate(ev)
        right = self.right.evaluate(ev)
        if self.op == "+":
            return left + right
        if self.op == "-":
            return left - right
        if self.op == "*":
            return left * right
        if right == 0:
            raise DivisionByZeroError(ev.source, ev.concept)
        return left / right

    def names(self) -> FrozenSet[str]:
        return self.left.names() | self.right.names()

    def calls(self) -> FrozenSet[Tuple[str, int]]:
        return self.left.calls() | self.right.calls()


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple[object, ...]

    def evaluate(self, ev: _Evaluation) -> Decimal:
        values = [arg.evaluate(ev) for arg in self.args]
        if self.name == "MIN":
            return min(values)
        if self.name == "MAX":
            return max(values)

        function = ev.functions.get(self.name)
        if function is None:
            raise UnknownFunctionError(self.name, ev.concept)
        try:
            return function(*values)
        except PayrollError as exc:
            raise exc.for_concept(ev.concept)

    def names(self) -> FrozenSet[str]:
        result: FrozenSet[str] = frozenset()
        for arg in self.args:
            result = result | arg.names()
        return result

    def calls(self) -> FrozenSet[Tuple[str, int]]:
        result = frozenset({(self.name, len(self.args))})
        for arg in self.args:
            result = result | arg.calls()
        return result


# ===========================================
# PARSER
# ===========================================

class _Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0
        self.nesting = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def expect(self, kind: str, what: str) -> Token:
        token = self.current
        if token.kind != kind:
            found = token.text or "end of formula"
            raise FormulaSyntaxError(self.source, token.position, f"expected {what}, found '{found}'")
        return self.advance()

    def parse(self):
        if self.current.kind == "END":
            raise FormulaSyntaxError(self.source, 0, "empty formula")
        tree = self.expr()
        if self.current.kind != "END":
            raise FormulaSyntaxError(
                self.source, self.current.position, f"unexpected '{self.current.text}'"
            )
        return tree

    def expr(self):
        node = self.term()
        while self.current.kind == "OP" and self.current.text in "+-":
            op = self.advance().text
            node = BinaryOp(op, node, self.term())
        return node

    def term(self):
        node = self.unary()
        while self.current.kind == "OP" and self.current.text in "*/":
            op = self.advance().text
            node = BinaryOp(op, node, self.unary())
        return node

    def unary(self):
        if self.nesting >= MAX_NESTING:
            raise FormulaSyntaxError(
                self.source, self.current.position, f"nested more than {MAX_NESTING} levels deep"
            )
        self.nesting += 1
        try:
            if self.current.kind == "OP" and self.current.text in "+-":
                op = self.advance().text
                return UnaryOp(op, self.unary())
            return self.primary()
        finally:
            self.nesting -= 1

    def primary(self):
        token = self.current

        if token.kind == "NUMBER":
            self.advance()
            return Number(Decimal(token.text))

        if token.kind == "NAME":
            self.advance()
            if self.current.kind == "LPAREN":
                return self.call(token)
            return Variable(token.text)

        if token.kind == "LPAREN":
            self.advance()
            node = self.expr()
            self.expect("RPAREN", "')'")
            return node

        found = token.text or "end of formula"
        raise FormulaSyntaxError(self.source, token.position, f"expected a value, found '{found}'")

    def call(self, name_token: Token):
        self.expect("LPAREN", "'('")
        args = [self.expr()]
        while self.current.kind == "COMMA":
            self.advance()
            args.append(self.expr())
        self.expect("RPAREN", "')' or ','")

        name = name_token.text
        if name.upper() in BUILTIN_FUNCTIONS:
            name = name.upper()
            if len(args) < 2:
                raise FormulaSyntaxError(
                    self.source, name_token.position, f"{name} needs at least two arguments"
                )
        return Call(name, tuple(args))


def tree_depth(tree) -> int:
    """Depth of an expression tree, measured without recursion."""
    deepest = 0
    stack = [(tree, 1)]
    while stack:
        node, depth = stack.pop()
        deepest = max(deepest, depth)
        if isinstance(node, UnaryOp):
            stack.append((node.operand, depth + 1))
        elif isinstance(node, BinaryOp):
            stack.append((node.left, depth + 1))
            stack.append((node.right, depth + 1))
        elif isinstance(node, Call):
            stack.extend((arg, depth + 1) for arg in node.args)
    return deepest


# ===========================================
# COMPILED FORMULA
# ===========================================

@dataclass(frozen=True)
class CompiledFormula:
    """Parsed formula, safe to share across threads and evaluations."""
    source: str
    tree: object
    variables: FrozenSet[str]
    calls: FrozenSet[Tuple[str, int]]

    @property
    def functions(self) -> FrozenSet[str]:
        return frozenset(name for name, _ in self.calls if name not in BUILTIN_FUNCTIONS)

    def evaluate_raw(
        self,
        context: Mapping[str, Decimal],
        functions: Optional[Mapping[str, Callable[..., Decimal]]] = None,
        concept: Optional[str] = None,
    ) -> Decimal:
        """Evaluate without the final rounding."""
        ev = _Evaluation(self.source, context, functions or {}, concept)
        with localcontext() as ctx:
            ctx.prec = PRECISION
            return self.tree.evaluate(ev)

    def evaluate(
        self,
        context: Mapping[str, Decimal],
        functions: Optional[Mapping[str, Callable[..., Decimal]]] = None,
        concept: Optional[str] = None,
    ) -> Decimal:
        """Evaluate and round the result to cents (half-up)."""
        return round_currency(self.evaluate_raw(context, functions, concept))


@lru_cache(maxsize=2048)
def _compile(source: str) -> CompiledFormula:
    tree = _Parser(source).parse()
    if tree_depth(tree) > MAX_DEPTH:
        raise FormulaSyntaxError(source, 0, f"expression tree deeper than {MAX_DEPTH} levels")
    return CompiledFormula(
        source=source,
        tree=tree,
        variables=tree.names(),
        calls=tree.calls(),
    )


def compile_formula(source: str, concept: Optional[str] = None) -> CompiledFormula:
    """
    Parse a formula string.

    Raises FormulaSyntaxError (tagged with `concept`) on malformed input.
    """
    if not isinstance(source, str):
        raise FormulaSyntaxError(str(source), 0, "formula must be text", concept)
    try:
        return _compile(source.strip())
    except FormulaSyntaxError as exc:
        raise exc.for_concept(concept)


def evaluate_formula(
    source: str,
    context: Mapping[str, Decimal],
    functions: Optional[Mapping[str, Callable[..., Decimal]]] = None,
    concept: Optional[str] = None,
) -> Decimal:
    """Parse and evaluate in one step. Prefer compile_formula for repeated use."""
    return compile_formula(source, concept).evaluate(context, functions, concept)
