"""Boolean expression evaluation against JSON documents.

Expressions use Python syntax and are interpreted by walking the parsed
tree; nothing is handed to ``eval``. Documents are plain JSON values (dicts,
lists, strings, numbers, booleans, None). Attribute access on a dict reads
the key of the same name, so ``data.id == "ble"`` and ``data["id"] == "ble"``
are equivalent.

Missing keys, bad indexes, unknown names and type mismatches raise
EvaluationError rather than evaluating to false.
"""
import ast
import logging
import operator

from models.errors import EvaluationError

logger = logging.getLogger("autoscale.alarms.expression")

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}


def _count(iterable):
    return sum(1 for _ in iterable)


FUNCTIONS = {
    "len": len,
    "count": _count,
    "sum": sum,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
    "abs": abs,
    "round": round,
    "int": int,
    "float": float,
    "str": str,
}

CONSTANTS = {
    "true": True,
    "false": False,
    "null": None,
    "True": True,
    "False": False,
    "None": None,
}

_ALLOWED_NODES = (
    ast.Expression, ast.BoolOp, ast.And, ast.Or, ast.UnaryOp, ast.BinOp,
    ast.Compare, ast.IfExp, ast.Constant, ast.Name, ast.Load, ast.Store,
    ast.Attribute, ast.Subscript, ast.Slice, ast.List, ast.Tuple, ast.Call,
    ast.GeneratorExp, ast.ListComp, ast.comprehension,
) + tuple(_BINARY_OPS) + tuple(_UNARY_OPS) + tuple(_COMPARE_OPS)


class Expression:
    """A parsed, validated expression that can be evaluated many times."""

    def __init__(self, source):
        self.source = source
        try:
            self._tree = ast.parse(source.strip(), mode="eval")
        except SyntaxError as e:
            raise EvaluationError(f"invalid expression: {e.msg}", expression=source)
        self._validate(self._tree)

    def _validate(self, tree):
        for node in ast.walk(tree):
            if not isinstance(node, _ALLOWED_NODES):
                raise EvaluationError(
                    f"unsupported syntax: {type(node).__name__}", expression=self.source
                )
            if isinstance(node, ast.Call):
                if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                    raise EvaluationError(
                        f"unsupported function call: {ast.unparse(node.func)}",
                        expression=self.source,
                    )
                if node.keywords:
                    raise EvaluationError("keyword arguments are not supported",
                                          expression=self.source)
            if isinstance(node, ast.comprehension) and node.is_async:
                raise EvaluationError("async comprehensions are not supported",
                                      expression=self.source)
            if isinstance(node, ast.Attribute) and node.attr.startswith("__"):
                raise EvaluationError(f"invalid attribute: {node.attr}",
                                      expression=self.source)

    def evaluate(self, document):
        """Evaluate against ``document`` (a dict of names to JSON values).

        Returns a bool. Anything else is an EvaluationError.
        """
        try:
            result = _Evaluator(document).visit(self._tree.body)
        except EvaluationError as e:
            if e.expression is None:
                e.expression = self.source
            raise
        except (TypeError, ValueError, ZeroDivisionError) as e:
            raise EvaluationError(f"evaluation failed: {e}", expression=self.source)
        if not isinstance(result, bool):
            raise EvaluationError(
                f"expression evaluated to {type(result).__name__}, not a boolean",
                expression=self.source,
            )
        return result


class _Evaluator:
    def __init__(self, names):
        self.scopes = [dict(names or {})]

    def lookup(self, name):
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        if name in CONSTANTS:
            return CONSTANTS[name]
        raise EvaluationError(f"name {name!r} is not defined")

    def visit(self, node):
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise EvaluationError(f"unsupported syntax: {type(node).__name__}")
        return method(node)

    def visit_Constant(self, node):
        return node.value

    def visit_Name(self, node):
        return self.lookup(node.id)

    def visit_Attribute(self, node):
        value = self.visit(node.value)
        if not isinstance(value, dict):
            raise EvaluationError(
                f"cannot read {node.attr!r} from {type(value).__name__}"
            )
        if node.attr not in value:
            raise EvaluationError(f"missing field {node.attr!r}")
        return value[node.attr]

    def visit_Subscript(self, node):
        value = self.visit(node.value)
        index = self.visit(node.slice)
        try:
            return value[index]
        except (KeyError, IndexError):
            raise EvaluationError(f"missing index {index!r}")
        except TypeError as e:
            raise EvaluationError(f"invalid index {index!r}: {e}")

    def visit_Slice(self, node):
        parts = [self.visit(p) if p is not None else None
                 for p in (node.lower, node.upper, node.step)]
        return slice(*parts)

    def visit_List(self, node):
        return [self.visit(e) for e in node.elts]

    def visit_Tuple(self, node):
        return tuple(self.visit(e) for e in node.elts)

    def visit_BoolOp(self, node):
        if isinstance(node.op, ast.And):
            result = True
            for v in node.values:
                result = self.visit(v)
                if not result:
                    return result
            return result
        result = False
        for v in node.values:
            result = self.visit(v)
            if result:
                return result
        return result

    def visit_UnaryOp(self, node):
        return _UNARY_OPS[type(node.op)](self.visit(node.operand))

    def visit_BinOp(self, node):
        return _BINARY_OPS[type(node.op)](self.visit(node.left), self.visit(node.right))

    def visit_Compare(self, node):
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    def visit_IfExp(self, node):
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Call(self, node):
        func = FUNCTIONS[node.func.id]
        return func(*[self.visit(a) for a in node.args])

    def visit_GeneratorExp(self, node):
        return list(self._comprehend(node.elt, node.generators))

    visit_ListComp = visit_GeneratorExp

    def _comprehend(self, elt, generators):
        gen, rest = generators[0], generators[1:]
        iterable = self.visit(gen.iter)
        if not isinstance(iterable, (list, tuple, dict, str)):
            raise EvaluationError(f"cannot iterate over {type(iterable).__name__}")
        for item in iterable:
            scope = {}
            self._bind(gen.target, item, scope)
            self.scopes.append(scope)
            try:
                if all(self.visit(cond) for cond in gen.ifs):
                    if rest:
                        yield from self._comprehend(elt, rest)
                    else:
                        yield self.visit(elt)
            finally:
                self.scopes.pop()

    def _bind(self, target, value, scope):
        if isinstance(target, ast.Name):
            scope[target.id] = value
        elif isinstance(target, (ast.Tuple, ast.List)):
            values = list(value)
            if len(values) != len(target.elts):
                raise EvaluationError("cannot unpack value in comprehension")
            for t, v in zip(target.elts, values):
                self._bind(t, v, scope)
        else:
            raise EvaluationError("unsupported comprehension target")


def compile_expression(source):
    """Parse and validate an expression, raising EvaluationError if malformed."""
    return Expression(source)


def evaluate(source, document):
    """Evaluate ``source`` against ``document`` and return a bool."""
    return Expression(source).evaluate(document)
