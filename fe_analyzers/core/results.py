"""メソッド戻り値・係数セットの型定義.

時間積分スキームの係数セットは NamedTuple（不変・名前付き・アンパック可）、
収束記録 AnalysisStatistics は解析中に更新されるため dataclass で定義する。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NamedTuple

import numpy as np


class DofPartition(NamedTuple):
    """自由 DOF / 拘束 DOF の分割.

    Attributes:
        free: (n_free,) 自由 DOF のモデル番号（昇順）
        fixed: (n_fixed,) 拘束 DOF のモデル番号（与えた順）
    """

    free: np.ndarray
    fixed: np.ndarray


class PartitionedMatrix(NamedTuple):
    """自由・拘束 DOF で分割した系行列のブロック.

    Attributes:
        ff: (n_free, n_free) 自由-自由ブロック（密 or 疎）
        fc: (n_free, n_fixed) 自由-拘束ブロック（等価節点力の計算用）
    """

    ff: Any
    fc: Any


@dataclass
class AnalysisStatistics:
    """反復解析の収束記録.

    増分・ステップ毎にリセットされ、ループ終了時に確定し、
    上位のアナライザ（時間積分・連成）へ集約される。

    Attributes:
        algorithm_name: アルゴリズム名（ログ表示用）
        converged: 収束したかどうか
        iterations: 使用した反復回数（全増分の合計）
        residual_norm_ratio: 最終（または代表）残差ノルム比
    """

    algorithm_name: str = ""
    converged: bool = False
    iterations: int = 0
    residual_norm_ratio: float = 0.0

    def copy(self) -> AnalysisStatistics:
        """コピーを返す."""
        return AnalysisStatistics(
            algorithm_name=self.algorithm_name,
            converged=self.converged,
            iterations=self.iterations,
            residual_norm_ratio=self.residual_norm_ratio,
        )


class TransientAnalysisCoefficients(NamedTuple):
    """有効行列を組む際の各階微分行列の係数.

    有効行列 = zero·K + first·C + second·M

    Attributes:
        zero: 0階（剛性）行列の係数
        first: 1階（減衰・熱容量）行列の係数
        second: 2階（質量）行列の係数
    """

    zero: float = 1.0
    first: float = 0.0
    second: float = 0.0


class NewmarkCoefficients(NamedTuple):
    """Newmark-β 法の積分定数 a0..a7."""

    a0: float
    a1: float
    a2: float
    a3: float
    a4: float
    a5: float
    a6: float
    a7: float


class GeneralizedAlphaCoefficients(NamedTuple):
    """一般化α法の積分定数.

    添字 N 付きは速度・加速度更新用（Newmark 形式）、
    N なしは有効行列・右辺用（αm, αf で重み付けした形式）。
    """

    a0N: float
    a0: float
    a1: float
    a2N: float
    a2: float
    a3N: float
    a3: float
    a4: float
    a5: float
    a6N: float
    a7N: float


class BDFCoefficients(NamedTuple):
    """k 次後退差分 (BDF) の係数.

    Attributes:
        order: 実効次数 (1..5)
        numerator: 有効行列の 1 階係数の分子（= numerator / dt）
        rhs_factors: 右辺履歴項の重み (u_n, u_{n-1}, ...)、長さ order
        derivative_factors: 1 階微分の差分重み (u_{n+1}, u_n, ...)、長さ order+1
    """

    order: int
    numerator: float
    rhs_factors: tuple[float, ...]
    derivative_factors: tuple[float, ...]


class CentralDifferencesCoefficients(NamedTuple):
    """中心差分法の積分定数."""

    a0: float
    a1: float
    a2: float
    a3: float
