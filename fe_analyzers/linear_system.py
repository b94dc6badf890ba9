"""参照用の線形系 A·x = b.

アナライザから見た線形ソルバー層の最小実装。
  - 密行列: scipy.linalg.lu_factor / lu_solve
  - 疎行列: scipy.sparse.linalg.splu（CSC）
matrix を代入し直すまで LU 分解を再利用する（定数係数の時間積分では
1 回の分解で全ステップを解ける）。
"""

from __future__ import annotations

import time
from typing import Any

import numpy as np
import scipy.linalg as la
import scipy.sparse as sp
import scipy.sparse.linalg as spla


class LinearSystem:
    """密/疎行列対応の線形系.

    Attributes:
        size: 自由度数
        rhs: (size,) 右辺ベクトル
        solution: (size,) 最新の解（未求解なら None）
        info: 最後の求解情報 (method, factorized, solve_time)
    """

    def __init__(self, size: int, *, show_progress: bool = False) -> None:
        if size < 1:
            raise ValueError(f"size は1以上: {size}")
        self.size = size
        self.show_progress = show_progress
        self._matrix: Any = None
        self._factor: Any = None
        self._rhs = np.zeros(size, dtype=float)
        self.solution: np.ndarray | None = None
        self.info: dict[str, Any] = {}

    @property
    def matrix(self) -> Any:
        return self._matrix

    @matrix.setter
    def matrix(self, A: Any) -> None:
        if A.shape != (self.size, self.size):
            raise ValueError(f"行列サイズが線形系と一致しません: {A.shape} != {(self.size, self.size)}")
        self._matrix = A
        self._factor = None

    @property
    def rhs(self) -> np.ndarray:
        return self._rhs

    @rhs.setter
    def rhs(self, b: np.ndarray) -> None:
        b = np.asarray(b, dtype=float).reshape(-1)
        if b.shape[0] != self.size:
            raise ValueError(f"右辺サイズが線形系と一致しません: {b.shape[0]} != {self.size}")
        self._rhs = b.copy()

    def create_zero_vector(self) -> np.ndarray:
        return np.zeros(self.size, dtype=float)

    def reset(self) -> None:
        """解と分解キャッシュを破棄する."""
        self.solution = None
        self._factor = None

    def solve(self) -> np.ndarray:
        """現在の matrix, rhs で求解する.

        Returns:
            (size,) 解ベクトル（self.solution にも保持）
        """
        if self._matrix is None:
            raise RuntimeError("線形系の行列が設定されていません")

        t0 = time.time()
        factorized = self._factor is None
        if factorized:
            self._factor = _factorize(self._matrix)
        x = _solve_factored(self._factor, self._rhs)
        elapsed = time.time() - t0

        self.solution = x
        self.info = {
            "method": "splu" if sp.issparse(self._matrix) else "lu_factor",
            "factorized": factorized,
            "solve_time": elapsed,
        }
        if self.show_progress:
            print(
                f"[{self.info['method']}] n={self.size}, factorized={factorized}, "
                f"elapsed={elapsed:.3f} s"
            )
        return x


def _factorize(A: Any) -> Any:
    """LU 分解（密: lu_factor, 疎: splu）."""
    if sp.issparse(A):
        return spla.splu(sp.csc_matrix(A, dtype=float))
    return la.lu_factor(np.asarray(A, dtype=float))


def _solve_factored(factor: Any, b: np.ndarray) -> np.ndarray:
    """LU 分解を使った求解."""
    if isinstance(factor, tuple):
        return la.lu_solve(factor, b)
    return np.asarray(factor.solve(b), dtype=float)
