"""代数モデル: 自由 DOF 空間と線形系の所有者.

アナライザの状態ベクトルはすべて自由 DOF 空間上のベクトル。
モデル DOF 番号（拘束 DOF を含む全 DOF）との対応はここで持つ。
"""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np

from fe_analyzers.bc import partition_dofs
from fe_analyzers.core.results import DofPartition
from fe_analyzers.linear_system import LinearSystem


class AlgebraicModel:
    """自由/拘束 DOF 分割と線形系を持つ代数モデル.

    Attributes:
        n_dofs: 全 DOF 数
        partition: DofPartition (free, fixed)
        linear_system: 自由 DOF サイズの線形系
    """

    def __init__(
        self,
        n_dofs: int,
        fixed_dofs: np.ndarray | list[int] | tuple[int, ...] = (),
    ) -> None:
        self.n_dofs = n_dofs
        self._fixed_input = np.asarray(fixed_dofs, dtype=int).reshape(-1)
        self.partition: DofPartition = partition_dofs(n_dofs, self._fixed_input)
        self._free_index = np.full(n_dofs, -1, dtype=int)
        self.linear_system = LinearSystem(self.partition.free.size)
        self.order_dofs()

    @property
    def n_free(self) -> int:
        return int(self.partition.free.size)

    @property
    def free_dofs(self) -> np.ndarray:
        return self.partition.free

    @property
    def fixed_dofs(self) -> np.ndarray:
        return self.partition.fixed

    def order_dofs(self) -> None:
        """モデル DOF → 自由 DOF 番号の対応を作り直し、線形系をリセットする."""
        self.partition = partition_dofs(self.n_dofs, self._fixed_input)
        self._free_index[:] = -1
        self._free_index[self.partition.free] = np.arange(self.partition.free.size)
        if self.linear_system.size != self.n_free:
            self.linear_system = LinearSystem(self.n_free)
        else:
            self.linear_system.reset()

    def create_zero_vector(self) -> np.ndarray:
        return np.zeros(self.n_free, dtype=float)

    def free_index(self, dof: int) -> int:
        """モデル DOF 番号 → 自由 DOF 番号（拘束 DOF は KeyError）."""
        if not 0 <= dof < self.n_dofs:
            raise KeyError(f"DOF {dof} はモデル外です")
        idx = int(self._free_index[dof])
        if idx < 0:
            raise KeyError(f"DOF {dof} は拘束 DOF です")
        return idx

    def add_to_global_vector(self, source: Mapping[int, float], target: np.ndarray) -> None:
        """モデル DOF 番号 → 値 のマップを自由 DOF ベクトルへ加算する.

        拘束 DOF への値は無視する（反力側の量のため）。
        """
        for dof, value in source.items():
            if not 0 <= dof < self.n_dofs:
                raise KeyError(f"DOF {dof} はモデル外です")
            idx = self._free_index[dof]
            if idx >= 0:
                target[idx] += value

    def extract_single_value(self, vector: np.ndarray, dof: int) -> float:
        """自由 DOF ベクトルからモデル DOF 番号の値を取り出す."""
        return float(vector[self.free_index(dof)])

    def expand(self, free_vector: np.ndarray, fixed_values: np.ndarray | None = None) -> np.ndarray:
        """自由 DOF ベクトルを全 DOF ベクトルへ展開する.

        Args:
            free_vector: (n_free,) 自由 DOF の値
            fixed_values: (n_fixed,) 拘束 DOF の値（None = 0）

        Returns:
            (n_dofs,) 全 DOF ベクトル
        """
        full = np.zeros(self.n_dofs, dtype=float)
        full[self.partition.free] = free_vector
        if fixed_values is not None and self.partition.fixed.size > 0:
            full[self.partition.fixed] = fixed_values
        return full
