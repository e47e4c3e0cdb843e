"""
cliquetree/core/registry.py

ID registry for named variables and factors.

The inference core works on dense integer variable ids; this registry maps
user-facing names onto them and back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple


@dataclass
class VariableRegistry:
    """
    Registry for mapping names to IDs.

    Attributes:
        var_name_to_id: Variable name -> ID
        fac_name_to_id: Factor name -> ID
        id_to_var_name: ID -> variable name
        id_to_fac_name: ID -> factor name
        cards: Cardinality of each variable, indexed by ID
    """
    var_name_to_id: Dict[str, int]
    fac_name_to_id: Dict[str, int]
    id_to_var_name: List[str]
    id_to_fac_name: List[str]
    cards: List[int]

    @staticmethod
    def build(var_domains: Mapping[str, int], factor_names: Iterable[str] = ()) -> "VariableRegistry":
        """
        Build a registry from variable domains and factor names.

        Args:
            var_domains: Map from variable name to domain size
            factor_names: Names of the factors

        Returns:
            VariableRegistry with ids assigned in sorted name order
        """
        var_names = sorted(var_domains.keys())
        fac_names = sorted(factor_names)
        for n in var_names:
            if int(var_domains[n]) < 1:
                raise ValueError(f"variable {n!r} must have at least one state, got {var_domains[n]}")

        return VariableRegistry(
            var_name_to_id={n: i for i, n in enumerate(var_names)},
            fac_name_to_id={n: i for i, n in enumerate(fac_names)},
            id_to_var_name=var_names,
            id_to_fac_name=fac_names,
            cards=[int(var_domains[n]) for n in var_names],
        )

    def var_id(self, name: str) -> int:
        """Get variable ID by name."""
        try:
            return self.var_name_to_id[name]
        except KeyError:
            raise KeyError(f"unknown variable {name!r}") from None

    def fac_id(self, name: str) -> int:
        """Get factor ID by name."""
        return self.fac_name_to_id[name]

    def var_name(self, vid: int) -> str:
        """Get variable name by ID."""
        return self.id_to_var_name[vid]

    def fac_name(self, fid: int) -> str:
        """Get factor name by ID."""
        return self.id_to_fac_name[fid]

    def var_ids(self, names: Sequence[str]) -> Tuple[int, ...]:
        return tuple(self.var_id(n) for n in names)

    def var_names(self, ids: Sequence[int]) -> Tuple[str, ...]:
        return tuple(self.var_name(v) for v in ids)

    def evidence_ids(self, evidence: Mapping[str, int]) -> Dict[int, int]:
        """Translate a name -> value evidence mapping into id -> value."""
        return {self.var_id(n): int(x) for n, x in evidence.items()}
