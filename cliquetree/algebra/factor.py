"""
cliquetree/algebra/factor.py

A TabularFactor is a dense non-negative table over an *ordered* variable domain.

Key operations:
  - multiply:    (f * g) on U∪W     (aligned pointwise product)
  - marginalize: sum onto K ⊆ U     (output axes follow U's relative order)
  - divide_by:   f / g with W ⊆ U   (0/0 := 0, near-zero denominators flagged)
  - slice:       fix variables to observed values and drop their axes
  - normalize:   scale to sum one, returning Z as a by-product

Design constraints:
  - Domain ordering is *semantic*: axes correspond 1-1 to domain entries.
  - Products use first-occurrence union ordering (deterministic).
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from cliquetree.core.errors import NumericalPrecisionWarning, ZeroPartitionError

logger = logging.getLogger(__name__)

VarID = int


@dataclass(frozen=True)
class TabularFactor:
    """
    A dense potential over an ordered variable domain.

    Attributes:
        domain: Ordered variable ids (axis labels).
        data: ndarray shaped by the variable cardinalities in the *same order*.
    """
    domain: Tuple[VarID, ...]
    data: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "domain", tuple(int(v) for v in self.domain))
        data = np.asarray(self.data, dtype=np.float64)
        object.__setattr__(self, "data", data)
        if len(self.domain) != data.ndim:
            raise ValueError(
                f"TabularFactor domain rank mismatch: |domain|={len(self.domain)} "
                f"but data.ndim={data.ndim}"
            )
        if len(set(self.domain)) != len(self.domain):
            raise ValueError(f"TabularFactor domain has duplicates: {self.domain}")

    @staticmethod
    def unit(domain: Sequence[VarID], shape: Sequence[int]) -> "TabularFactor":
        """All-ones factor on the given domain."""
        return TabularFactor(tuple(domain), np.ones(tuple(shape), dtype=np.float64))

    @staticmethod
    def scalar(value: float) -> "TabularFactor":
        return TabularFactor((), np.asarray(float(value)).reshape(()))

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.data.shape

    def axis_of(self, v: VarID) -> int:
        """Returns the axis index of variable v in self.domain."""
        return self.domain.index(v)

    def card_of(self, v: VarID) -> int:
        """Returns the cardinality of variable v, inferred from data shape."""
        return self.data.shape[self.axis_of(v)]

    def cards(self) -> dict:
        return {v: self.data.shape[i] for i, v in enumerate(self.domain)}

    def total(self) -> float:
        return float(np.sum(self.data))

    def _aligned_view(self, target_domain: Tuple[VarID, ...], target_shape: Tuple[int, ...]) -> np.ndarray:
        """
        Returns an ndarray aligned to target_domain and broadcast to target_shape.

        - Existing axes are permuted into target order.
        - Missing axes become singleton dimensions.
        """
        src_pos = {v: i for i, v in enumerate(self.domain)}
        perm = [src_pos[v] for v in target_domain if v in src_pos]
        if len(perm) != len(self.domain):
            raise ValueError(f"target domain {target_domain} does not contain {self.domain}")

        data = self.data
        if perm and perm != list(range(len(perm))):
            data = np.transpose(data, axes=perm)

        shape = []
        j = 0
        for v in target_domain:
            if v in src_pos:
                shape.append(data.shape[j])
                j += 1
            else:
                shape.append(1)

        data = data.reshape(shape)
        return np.broadcast_to(data, target_shape)

    def reorder(self, domain: Sequence[VarID]) -> "TabularFactor":
        """Permute axes into the given order (must be a permutation of the domain)."""
        domain = tuple(domain)
        if domain == self.domain:
            return self
        if set(domain) != set(self.domain) or len(domain) != len(self.domain):
            raise ValueError(f"reorder target {domain} is not a permutation of {self.domain}")
        pos = {v: i for i, v in enumerate(self.domain)}
        return TabularFactor(domain, np.transpose(self.data, axes=[pos[v] for v in domain]))

    def multiply(self, other: "TabularFactor") -> "TabularFactor":
        """
        Pointwise product on the union domain.

        (f * g)(x_{U∪W}) = f(x_U) g(x_W)

        The union keeps self's order, then appends other's new variables.
        """
        mine = set(self.domain)
        union = self.domain + tuple(v for v in other.domain if v not in mine)

        target_shape = []
        for v in union:
            if v in self.domain:
                n = self.card_of(v)
                if v in other.domain and other.card_of(v) != n:
                    raise ValueError(
                        f"cardinality mismatch for variable {v}: {n} vs {other.card_of(v)}"
                    )
                target_shape.append(n)
            else:
                target_shape.append(other.card_of(v))
        target_shape = tuple(target_shape)

        a = self._aligned_view(union, target_shape)
        b = other._aligned_view(union, target_shape)
        return TabularFactor(union, a * b)

    def marginalize(self, keep: Iterable[VarID]) -> "TabularFactor":
        """
        Sum out every variable not in keep.

        The output domain is keep ∩ domain in the factor's own relative order.
        """
        keep_set = set(keep)
        kept = tuple(v for v in self.domain if v in keep_set)
        if kept == self.domain:
            return self
        axes = tuple(i for i, v in enumerate(self.domain) if v not in keep_set)
        return TabularFactor(kept, np.sum(self.data, axis=axes))

    def divide_by(self, other: "TabularFactor", tol: float = 0.0) -> "TabularFactor":
        return divide_by(self, other, tol=tol)

    def slice(self, fixed_vars: Sequence[VarID], fixed_vals: Sequence[int]) -> "TabularFactor":
        return slice_factor(self, fixed_vars, fixed_vals)

    def normalize(self) -> "TabularFactor":
        return normalize_factor(self)[0]

    def __repr__(self) -> str:
        return f"TabularFactor(domain={self.domain}, shape={self.data.shape})"


def multiply_factors(factors: Sequence[TabularFactor]) -> TabularFactor:
    """
    Multiply all factors together.

    An empty sequence yields the scalar unit factor.
    """
    factors = list(factors)
    if not factors:
        return TabularFactor.scalar(1.0)
    acc = factors[0]
    for f in factors[1:]:
        acc = acc.multiply(f)
    return acc


def marginalize(factor: TabularFactor, keep: Iterable[VarID]) -> TabularFactor:
    """Sum out every variable of factor that is not in keep."""
    return factor.marginalize(keep)


def divide_by(num: TabularFactor, den: TabularFactor, tol: float = 0.0) -> TabularFactor:
    """
    Elementwise num / den, broadcasting den over num's remaining axes.

    Entries whose denominator magnitude is <= tol are set to zero. When such an
    entry has a non-zero numerator a NumericalPrecisionWarning is emitted, since
    the quotient is then not the cancellation of an earlier product.
    """
    num_vars = set(num.domain)
    missing = [v for v in den.domain if v not in num_vars]
    if missing:
        raise ValueError(f"divide_by: denominator variables {missing} not in numerator domain {num.domain}")

    d = den._aligned_view(num.domain, num.data.shape)
    small = np.abs(d) <= tol
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(small, 0.0, num.data / np.where(small, 1.0, d))

    if np.any(small):
        lost = np.count_nonzero(small & (num.data != 0))
        if lost:
            msg = (
                f"divide_by: {lost} entries of factor over {num.domain} divided by "
                f"near-zero denominator (|den| <= {tol:g}); set to 0"
            )
            logger.warning(msg)
            warnings.warn(msg, NumericalPrecisionWarning, stacklevel=2)

    return TabularFactor(num.domain, out)


def slice_factor(
    factor: TabularFactor,
    fixed_vars: Sequence[VarID],
    fixed_vals: Sequence[int],
) -> TabularFactor:
    """
    Restrict factor to fixed_vars = fixed_vals and drop those axes.

    Fixed variables outside the factor's domain are ignored.
    """
    if len(fixed_vars) != len(fixed_vals):
        raise ValueError("slice: fixed_vars and fixed_vals must have equal length")

    values = {int(v): int(x) for v, x in zip(fixed_vars, fixed_vals)}
    index = []
    kept = []
    for i, v in enumerate(factor.domain):
        if v in values:
            x = values[v]
            if not 0 <= x < factor.data.shape[i]:
                raise ValueError(
                    f"slice: value {x} out of range for variable {v} with {factor.data.shape[i]} states"
                )
            index.append(x)
        else:
            index.append(slice(None))
            kept.append(v)

    if len(kept) == len(factor.domain):
        return factor
    return TabularFactor(tuple(kept), np.array(factor.data[tuple(index)]))


def normalize_factor(factor: TabularFactor) -> Tuple[TabularFactor, float]:
    """
    Scale factor to sum to one.

    Returns:
        (normalized factor, Z) where Z is the original sum.
    """
    z = float(np.sum(factor.data))
    if not np.isfinite(z) or z <= 0.0:
        raise ZeroPartitionError(
            f"cannot normalize factor over {factor.domain}: total mass is {z}"
        )
    return TabularFactor(factor.domain, factor.data / z), z


def sample_factor(
    factor: TabularFactor,
    n: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Draw n joint assignments from the distribution proportional to factor.

    Returns:
        int array of shape (n, len(factor.domain)), columns in domain order.
    """
    if rng is None:
        rng = np.random.default_rng()
    probs, _ = normalize_factor(factor)
    flat = probs.data.reshape(-1)
    idx = rng.choice(flat.size, size=int(n), p=flat)
    if not factor.domain:
        return np.zeros((int(n), 0), dtype=np.int64)
    coords = np.unravel_index(idx, probs.data.shape)
    return np.stack(coords, axis=1).astype(np.int64)
