"""Lazy tensor expressions.

Arithmetic on tensor-like values builds a small tree of nodes instead of
computing anything::

    c = a + b + a          # BinaryOp(BinaryOp(a, b), a), nothing computed
    t = Tensor(c)          # evaluated here, once per element

Node kinds form a closed set: the concrete ``Tensor`` (defined in
``frnn.tensor``), ``Scalar``, ``UnaryOp``, ``BinaryOp`` and ``TensorSlice``.
Every node answers ``size()``, ``dim_sizes()`` and ``element_at(i)``; the
``evaluate()`` walker produces the whole flat buffer with vectorised torch ops.

Lifetime rule: nodes borrow concrete Tensors through weak references. An
expression must not be read or evaluated after a Tensor it reads from has been
destroyed; doing so raises ``ExpiredOperand``. Build expressions from named
tensors, not temporaries.
"""

from abc import ABC, abstractmethod
import math
import numbers
import operator
import weakref

import torch

from frnn.errors import (
    DimensionMismatch,
    ExpiredOperand,
    IndexOutOfRange,
    InvalidArgumentCount,
)
from frnn.indexing import flat_offset, unravel

# Element transforms usable both by UnaryOp and by the kernel suite.
TRANSFORMS = {
    "identity": lambda x: x,
    "exp": torch.exp,
    "tanh": torch.tanh,
    "sigmoid": torch.sigmoid,
    "neg": torch.neg,
}

_BINARY_OPS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


def get_transform(name):
    try:
        return TRANSFORMS[name]
    except KeyError:
        raise ValueError(
            f"Unknown transform {name!r}, expected one of {sorted(TRANSFORMS)}"
        ) from None


def _borrow(operand):
    if operand._owns_data:
        return weakref.ref(operand)
    return operand


def _deref(ref):
    if isinstance(ref, weakref.ref):
        target = ref()
        if target is None:
            raise ExpiredOperand(
                "Expression operand was destroyed before the expression was used"
            )
        return target
    return ref


class TensorExpression(ABC):
    """Anything that can appear as an operand of tensor arithmetic."""

    _owns_data = False

    @abstractmethod
    def size(self):
        """Total number of elements."""

    @abstractmethod
    def dim_sizes(self):
        """Tuple with the size of each dimension."""

    @abstractmethod
    def element_at(self, i):
        """Value of flat element ``i``, computed on demand."""

    @abstractmethod
    def evaluate(self):
        """Flat, contiguous torch buffer holding every element."""

    @property
    @abstractmethod
    def device(self):
        """Device the evaluated buffer lives on."""

    @property
    @abstractmethod
    def dtype(self):
        """Element type of the evaluated buffer."""

    def rank(self):
        return len(self.dim_sizes())

    def __getitem__(self, i):
        return self.element_at(i)

    def _coerce(self, other):
        if isinstance(other, TensorExpression):
            return other
        if isinstance(other, numbers.Number):
            return Scalar(other, like=self)
        return None

    def _binary(self, symbol, other, reflected=False):
        other = self._coerce(other)
        if other is None:
            return NotImplemented
        if reflected:
            return BinaryOp(symbol, other, self)
        return BinaryOp(symbol, self, other)

    def __add__(self, other):
        return self._binary("+", other)

    def __radd__(self, other):
        return self._binary("+", other, reflected=True)

    def __sub__(self, other):
        return self._binary("-", other)

    def __rsub__(self, other):
        return self._binary("-", other, reflected=True)

    def __mul__(self, other):
        return self._binary("*", other)

    def __rmul__(self, other):
        return self._binary("*", other, reflected=True)

    def __truediv__(self, other):
        return self._binary("/", other)

    def __rtruediv__(self, other):
        return self._binary("/", other, reflected=True)

    def __neg__(self):
        return UnaryOp("neg", self)


class Scalar(TensorExpression):
    """A constant broadcast to the shape of another expression."""

    def __init__(self, value, like):
        self.value = value
        self._dims = tuple(like.dim_sizes())
        self._size = like.size()
        self._device = like.device

    def size(self):
        return self._size

    def dim_sizes(self):
        return self._dims

    def element_at(self, i):
        return self.value

    def evaluate(self):
        return torch.full((self._size,), self.value, device=self._device)

    @property
    def device(self):
        return self._device

    @property
    def dtype(self):
        return torch.tensor(self.value).dtype

    def __repr__(self):
        return f"Scalar({self.value!r})"


def _operand_data(node):
    # a bare Python number keeps torch's scalar promotion rules, so a
    # float16 tensor plus 1.0 stays float16
    if isinstance(node, Scalar):
        return node.value
    return node.evaluate()


def _operand_placeholder(node):
    if isinstance(node, Scalar):
        return node.value
    return torch.empty(0, dtype=node.dtype)


class UnaryOp(TensorExpression):
    """A named element transform applied to one operand."""

    def __init__(self, name, operand):
        self.name = name
        self.fn = get_transform(name)
        self._operand = _borrow(operand)

    @property
    def operand(self):
        return _deref(self._operand)

    def size(self):
        return self.operand.size()

    def dim_sizes(self):
        return self.operand.dim_sizes()

    def element_at(self, i):
        operand = self.operand
        value = torch.as_tensor(operand.element_at(i), dtype=operand.dtype)
        return self.fn(value).item()

    def evaluate(self):
        return self.fn(self.operand.evaluate())

    @property
    def device(self):
        return self.operand.device

    @property
    def dtype(self):
        return self.fn(torch.empty(0, dtype=self.operand.dtype)).dtype

    def __repr__(self):
        return f"{self.name}({self.operand!r})"


class BinaryOp(TensorExpression):
    """``left OP right`` evaluated element by element."""

    def __init__(self, symbol, left, right):
        if left.size() != right.size() or tuple(left.dim_sizes()) != tuple(
            right.dim_sizes()
        ):
            raise DimensionMismatch(
                f"Cannot combine expressions with dimensions "
                f"{list(left.dim_sizes())} and {list(right.dim_sizes())}"
            )
        self.symbol = symbol
        self.op = _BINARY_OPS[symbol]
        self._left = _borrow(left)
        self._right = _borrow(right)

    @property
    def left(self):
        return _deref(self._left)

    @property
    def right(self):
        return _deref(self._right)

    def size(self):
        return self.left.size()

    def dim_sizes(self):
        return self.left.dim_sizes()

    def element_at(self, i):
        return self.op(self.left.element_at(i), self.right.element_at(i))

    def evaluate(self):
        left, right = self.left, self.right
        if isinstance(left, Scalar) and isinstance(right, Scalar):
            return self.op(left.evaluate(), right.evaluate())
        return self.op(_operand_data(left), _operand_data(right))

    @property
    def device(self):
        return self.left.device

    @property
    def dtype(self):
        left, right = self.left, self.right
        if isinstance(left, Scalar) and isinstance(right, Scalar):
            return self.op(left.evaluate(), right.evaluate()).dtype
        return self.op(_operand_placeholder(left), _operand_placeholder(right)).dtype

    def __repr__(self):
        return f"({self.left!r} {self.symbol} {self.right!r})"


class TensorSlice(TensorExpression):
    """A view that remaps the dimensions of a Tensor without copying.

    Dimension ``k`` of the view is dimension ``selectors[k]`` of the source.
    Source dimensions that are not selected stay pinned at index 0. Swapping
    the two selectors of a rank-2 tensor therefore transposes it.
    """

    def __init__(self, source, selectors):
        rank = source.rank()
        selectors = tuple(selectors)
        if not selectors or len(selectors) > rank:
            raise InvalidArgumentCount(rank, len(selectors))
        for k, s in enumerate(selectors):
            if not isinstance(s, numbers.Integral) or s < 0 or s >= rank:
                raise IndexOutOfRange(k, rank, s)
        if len(set(selectors)) != len(selectors):
            raise DimensionMismatch(f"Repeated dimension in slice {selectors}")

        src_dims = source.dim_sizes()
        self.selectors = selectors
        self._source = _borrow(source)
        self._dims = tuple(src_dims[s] for s in selectors)
        self._size = math.prod(self._dims)

    @property
    def source(self):
        return _deref(self._source)

    def size(self):
        return self._size

    def dim_sizes(self):
        return self._dims

    def _source_index(self, idx):
        src_idx = [0] * self.source.rank()
        for k, s in enumerate(self.selectors):
            src_idx[s] = idx[k]
        return src_idx

    def element_at(self, i):
        source = self.source
        src_idx = self._source_index(unravel(i, self._dims))
        return source.element_at(flat_offset(source.dim_sizes(), src_idx))

    def evaluate(self):
        source = self.source
        view = source.data().reshape(source.dim_sizes())
        view = view[
            tuple(slice(None) if d in self.selectors else 0 for d in range(source.rank()))
        ]
        kept = sorted(self.selectors)
        view = view.permute(*(kept.index(s) for s in self.selectors))
        return view.contiguous().reshape(-1)

    @property
    def device(self):
        return self.source.device

    @property
    def dtype(self):
        return self.source.dtype

    def __repr__(self):
        return f"TensorSlice({self.source!r}, {self.selectors})"


def exp(expr):
    return UnaryOp("exp", expr)


def tanh(expr):
    return UnaryOp("tanh", expr)


def sigmoid(expr):
    return UnaryOp("sigmoid", expr)
