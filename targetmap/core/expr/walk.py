from __future__ import annotations

import keyword
from typing import Iterator, Mapping

from targetmap.core.errors import BuildValidationError
from targetmap.core.expr.nodes import DICT, LIST, TUPLE, Call, Expr, Literal, Placeholder, Splice, Symbol, is_display


def substitute(expr: Expr, bindings: Mapping[str, Expr]) -> Expr:
    """Return a copy of ``expr`` with bound names replaced. Purely syntactic.

    - a ``Symbol`` whose name is bound is replaced by the binding; a dotted
      symbol whose root is bound to a symbol keeps its attribute path, and a
      root bound to anything else raises ``E_DOTTED_BINDING``
    - a bound ``Placeholder`` is replaced by the binding; unbound ones stay
    - a bound ``Splice`` is expanded inline. List and tuple displays spread
      into positional items; dict displays spread into keyword arguments of a
      call or into the entries of an enclosing dict display. Anything else is
      inserted as a single item.
    """
    if not bindings:
        return expr

    if isinstance(expr, Literal):
        return expr

    if isinstance(expr, Symbol):
        if expr.name in bindings:
            return bindings[expr.name]
        root = expr.root
        if root != expr.name and root in bindings:
            bound = bindings[root]
            if not isinstance(bound, Symbol):
                raise BuildValidationError(
                    code="E_DOTTED_BINDING",
                    message=f"{expr.name}: {root} is bound to a value, not a name, so the attribute path cannot be kept",
                )
            return Symbol(bound.name + expr.name[len(root):])
        return expr

    if isinstance(expr, (Placeholder, Splice)):
        return bindings.get(expr.name, expr)

    if isinstance(expr, Call):
        return _substitute_call(expr, bindings)

    raise TypeError(f"not an expression: {expr!r}")


def _substitute_call(expr: Call, bindings: Mapping[str, Expr]) -> Call:
    in_sequence = is_display(expr, LIST) or is_display(expr, TUPLE)
    in_dict = is_display(expr, DICT)

    args: list[Expr] = []
    spread: list[tuple[str, Expr]] = []
    for arg in expr.args:
        if not (isinstance(arg, Splice) and arg.name in bindings):
            args.append(substitute(arg, bindings))
            continue
        bound = bindings[arg.name]
        if (is_display(bound, LIST) or is_display(bound, TUPLE)) and not in_dict:
            args.extend(bound.args)  # type: ignore[union-attr]
        elif is_display(bound, DICT) and not bound.args and not in_sequence:  # type: ignore[union-attr]
            if not in_dict:
                for key, _ in bound.kwargs:  # type: ignore[union-attr]
                    if not is_keyword_name(key):
                        raise BuildValidationError(
                            code="E_SPLICE_KEYWORD",
                            message=f"cannot pass {key!r} from {arg.name} as a keyword argument",
                        )
            spread.extend(bound.kwargs)  # type: ignore[union-attr]
        else:
            args.append(bound)

    own = [(k, substitute(v, bindings)) for k, v in expr.kwargs]
    # Spread entries keep their place before a dict display's own keys.
    kwargs = spread + own if in_dict else own + spread
    return Call(func=substitute(expr.func, bindings), args=tuple(args), kwargs=tuple(kwargs))


def is_keyword_name(name: str) -> bool:
    """True if ``name`` can be written as ``name=value`` in a call."""
    return name.isidentifier() and not keyword.iskeyword(name)


def keyword_splices(expr: Expr) -> set[str]:
    """Names of splices passed straight into a call, where dict entries become keyword arguments."""
    out: set[str] = set()
    for n in iter_nodes(expr):
        if isinstance(n, Call) and not any(is_display(n, kind) for kind in (LIST, TUPLE, DICT)):
            out.update(a.name for a in n.args if isinstance(a, Splice))
    return out


def iter_nodes(expr: Expr) -> Iterator[Expr]:
    """Pre-order walk over every node, call heads included."""
    yield expr
    if isinstance(expr, Call):
        yield from iter_nodes(expr.func)
        for a in expr.args:
            yield from iter_nodes(a)
        for _, v in expr.kwargs:
            yield from iter_nodes(v)


def walk_symbols(expr: Expr) -> set[str]:
    return {n.name for n in iter_nodes(expr) if isinstance(n, Symbol)}


def placeholders(expr: Expr) -> list[str]:
    """Names of ``Placeholder`` nodes in first-occurrence order."""
    out: list[str] = []
    for n in iter_nodes(expr):
        if isinstance(n, Placeholder) and n.name not in out:
            out.append(n.name)
    return out


def mentions(expr: Expr, name: str) -> bool:
    """True if any symbol, placeholder or splice in ``expr`` is called ``name``."""
    for n in iter_nodes(expr):
        if isinstance(n, Symbol) and (n.name == name or n.root == name):
            return True
        if isinstance(n, (Placeholder, Splice)) and n.name == name:
            return True
    return False
