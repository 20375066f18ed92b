from __future__ import annotations

import ast
from typing import Any, Optional

from targetmap.core.errors import ExpressionSyntaxError
from targetmap.core.expr.nodes import DICT, LIST, TUPLE, Call, Expr, Literal, Placeholder, Splice, Symbol


# Operator symbols never collide with target names (they are not identifiers).
BINARY_OPERATORS: dict[type, str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.FloorDiv: "//",
    ast.Mod: "%",
    ast.Pow: "**",
    ast.MatMult: "@",
    ast.BitAnd: "&",
    ast.BitOr: "|",
    ast.BitXor: "^",
    ast.LShift: "<<",
    ast.RShift: ">>",
}

COMPARE_OPERATORS: dict[type, str] = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.In: "in",
    ast.NotIn: "not in",
    ast.Is: "is",
    ast.IsNot: "is not",
}

UNARY_OPERATORS: dict[type, str] = {
    ast.USub: "u-",
    ast.UAdd: "u+",
    ast.Not: "not",
    ast.Invert: "~",
}

BOOL_OPERATORS: dict[type, str] = {
    ast.And: "and",
    ast.Or: "or",
}

SUBSCRIPT = "[]"


def parse_expr(text: str, *, path: Optional[str] = None, template: Optional[str] = None) -> Expr:
    """Parse Python expression syntax into an expression tree.

    Supported: names and dotted names, constants, calls (positional, keyword,
    ``*name`` splices), operators, simple subscripts, list/tuple/dict displays
    (``[*name]``, ``{**name}``) and ``{name}`` column placeholders. Displays
    get reserved heads, so ``list(x)`` and ``[x]`` stay distinct. Anything
    else (lambdas, comprehensions, slices, f-strings) is rejected.
    """
    if not isinstance(text, str) or not text.strip():
        raise ExpressionSyntaxError(
            code="E_EXPR_SYNTAX",
            message="expression must be a non-empty string",
            path=path,
            template=template,
        )
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionSyntaxError(
            code="E_EXPR_SYNTAX",
            message=f"cannot parse {text!r}: {e.msg}",
            path=path,
            template=template,
        ) from e
    return _convert(tree.body, text=text, path=path, template=template)


def _convert(node: ast.AST, *, text: str, path: Optional[str], template: Optional[str]) -> Expr:
    def conv(n: ast.AST) -> Expr:
        return _convert(n, text=text, path=path, template=template)

    def fail(what: str) -> ExpressionSyntaxError:
        return ExpressionSyntaxError(
            code="E_EXPR_SYNTAX",
            message=f"unsupported syntax in {text!r}: {what}",
            path=path,
            template=template,
        )

    if isinstance(node, ast.Constant):
        if not isinstance(node.value, (str, int, float, bool, type(None))):
            raise fail(f"constant of type {type(node.value).__name__}")
        return Literal(node.value)

    if isinstance(node, ast.Name):
        return Symbol(node.id)

    if isinstance(node, ast.Attribute):
        dotted = _dotted_name(node)
        if dotted is None:
            raise fail("attribute access on a non-name")
        return Symbol(dotted)

    if isinstance(node, ast.Set):
        if len(node.elts) == 1 and isinstance(node.elts[0], ast.Name):
            return Placeholder(node.elts[0].id)
        raise fail("set displays other than {column} placeholders")

    if isinstance(node, ast.Starred):
        if isinstance(node.value, ast.Name):
            return Splice(node.value.id)
        raise fail("splice of a non-name")

    if isinstance(node, ast.Call):
        kwargs: list[tuple[str, Expr]] = []
        for kw in node.keywords:
            if kw.arg is None:
                raise fail("**kwargs expansion")
            kwargs.append((kw.arg, conv(kw.value)))
        return Call(func=conv(node.func), args=tuple(conv(a) for a in node.args), kwargs=tuple(kwargs))

    if isinstance(node, ast.UnaryOp):
        operand = conv(node.operand)
        # Fold negative numbers so "-1" stays a literal.
        if isinstance(node.op, ast.USub) and isinstance(operand, Literal):
            if isinstance(operand.value, (int, float)) and not isinstance(operand.value, bool):
                return Literal(-operand.value)
        return Call(func=Symbol(UNARY_OPERATORS[type(node.op)]), args=(operand,))

    if isinstance(node, ast.BinOp):
        return Call(func=Symbol(BINARY_OPERATORS[type(node.op)]), args=(conv(node.left), conv(node.right)))

    if isinstance(node, ast.BoolOp):
        return Call(func=Symbol(BOOL_OPERATORS[type(node.op)]), args=tuple(conv(v) for v in node.values))

    if isinstance(node, ast.Compare):
        if len(node.ops) != 1:
            raise fail("chained comparisons")
        op = COMPARE_OPERATORS[type(node.ops[0])]
        return Call(func=Symbol(op), args=(conv(node.left), conv(node.comparators[0])))

    if isinstance(node, ast.Subscript):
        if isinstance(node.slice, ast.Slice):
            raise fail("slices")
        return Call(func=Symbol(SUBSCRIPT), args=(conv(node.value), conv(node.slice)))

    if isinstance(node, ast.List):
        return Call(func=Symbol(LIST), args=tuple(conv(e) for e in node.elts))

    if isinstance(node, ast.Tuple):
        return Call(func=Symbol(TUPLE), args=tuple(conv(e) for e in node.elts))

    if isinstance(node, ast.Dict):
        spliced: list[Expr] = []
        items: list[tuple[str, Expr]] = []
        for k, v in zip(node.keys, node.values):
            if k is None:
                # {**name, ...}
                if items:
                    raise fail("dict unpacking after keyed entries")
                if not isinstance(v, ast.Name):
                    raise fail("dict unpacking of a non-name")
                spliced.append(Splice(v.id))
                continue
            if not isinstance(k, ast.Constant) or not isinstance(k.value, str):
                raise fail("dict keys must be string literals")
            items.append((k.value, conv(v)))
        return Call(func=Symbol(DICT), args=tuple(spliced), kwargs=tuple(items))

    raise fail(type(node).__name__)


def _dotted_name(node: ast.AST) -> Optional[str]:
    parts: list[str] = []
    cur: Any = node
    while isinstance(cur, ast.Attribute):
        parts.append(cur.attr)
        cur = cur.value
    if not isinstance(cur, ast.Name):
        return None
    parts.append(cur.id)
    return ".".join(reversed(parts))
