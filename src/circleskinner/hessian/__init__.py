"""Hessian tensor fields, their eigenvalues and ridge enhancement."""

from .packed import PackedSymmetricMatrixView, packed_index
from .tensor_field import TensorField, build_tensor_field
from .eigenvalues import tensor_eigenvalues, square_eigenvalues
from .tubeness import tubeness

__all__ = [
    "PackedSymmetricMatrixView",
    "packed_index",
    "TensorField",
    "build_tensor_field",
    "tensor_eigenvalues",
    "square_eigenvalues",
    "tubeness",
]
