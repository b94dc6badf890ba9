"""Dirichlet 境界条件（自由・拘束 DOF 分割と等価節点力）.

アナライザは自由 DOF 空間のみを扱う。拘束 DOF の規定値 u_c は
  f_free <- f_free - K_fc · u_c
の形で等価節点力として右辺へ繰り込む。
"""

from __future__ import annotations

import warnings

import numpy as np
import scipy.sparse as sp
from scipy.sparse import SparseEfficiencyWarning

from fe_analyzers.core.results import DofPartition, PartitionedMatrix

warnings.simplefilter("ignore", SparseEfficiencyWarning)


def partition_dofs(n_dofs: int, fixed_dofs: np.ndarray | list[int] | tuple[int, ...] = ()) -> DofPartition:
    """全 DOF を自由 DOF と拘束 DOF に分割する.

    Args:
        n_dofs: 全 DOF 数
        fixed_dofs: 拘束 DOF の配列（重複不可）

    Returns:
        DofPartition: (free, fixed) の NamedTuple
    """
    if n_dofs < 1:
        raise ValueError(f"n_dofs は1以上: {n_dofs}")
    fixed = np.asarray(fixed_dofs, dtype=int).reshape(-1)
    if fixed.size > 0:
        if fixed.min() < 0 or fixed.max() >= n_dofs:
            raise ValueError(f"fixed_dofs が範囲外: {fixed}")
        if np.unique(fixed).size != fixed.size:
            raise ValueError(f"fixed_dofs に重複があります: {fixed}")
    free_mask = np.ones(n_dofs, dtype=bool)
    free_mask[fixed] = False
    free = np.arange(n_dofs)[free_mask]
    if free.size == 0:
        raise ValueError("自由 DOF がありません")
    return DofPartition(free=free, fixed=fixed)


def partition_matrix(A: np.ndarray | sp.spmatrix, partition: DofPartition) -> PartitionedMatrix:
    """系行列を自由-自由 / 自由-拘束ブロックへ分割する.

    疎行列は CSR のまま、密行列は ndarray のまま返す。
    """
    free, fixed = partition.free, partition.fixed
    if sp.issparse(A):
        A_csr = sp.csr_matrix(A, dtype=float)
        ff = A_csr[free, :][:, free].tocsr()
        fc = A_csr[free, :][:, fixed].tocsr()
        return PartitionedMatrix(ff=ff, fc=fc)
    A_d = np.asarray(A, dtype=float)
    if A_d.ndim != 2 or A_d.shape[0] != A_d.shape[1]:
        raise ValueError(f"系行列は正方行列: {A_d.shape}")
    return PartitionedMatrix(ff=A_d[np.ix_(free, free)], fc=A_d[np.ix_(free, fixed)])


def dirichlet_equivalent_loads(
    A_fc: np.ndarray | sp.spmatrix,
    values: np.ndarray,
    scaling_factor: float = 1.0,
) -> np.ndarray:
    """規定変位による等価節点力 K_fc · (scaling_factor · u_c).

    Args:
        A_fc: (n_free, n_fixed) 自由-拘束ブロック
        values: (n_fixed,) 規定変位
        scaling_factor: 規定値の倍率（変位制御の増分率など）

    Returns:
        (n_free,) 等価節点力（右辺から差し引く量）
    """
    n_free = A_fc.shape[0]
    values = np.asarray(values, dtype=float)
    if values.size == 0 or not np.any(values != 0.0):
        return np.zeros(n_free, dtype=float)
    return np.asarray(A_fc @ (scaling_factor * values), dtype=float).reshape(-1)


def broadcast_prescribed_values(
    values: float | np.ndarray,
    partition: DofPartition,
) -> np.ndarray:
    """規定値（スカラー or 拘束 DOF 同長配列）を拘束 DOF 長の配列に揃える."""
    n_fixed = partition.fixed.size
    if np.isscalar(values):
        return np.full(n_fixed, float(values))  # type: ignore[arg-type]
    vals = np.asarray(values, dtype=float).reshape(-1)
    if vals.shape[0] != n_fixed:
        raise ValueError("values の長さと fixed_dofs の長さが一致していません。")
    return vals.copy()
