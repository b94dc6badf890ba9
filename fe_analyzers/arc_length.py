"""弧長法 (Crisfield, 1981) による増分反復ソルバー.

荷重係数 λ を未知数に加え、拘束条件
    ||Δu||² + shape²·Δλ²·||f||² = Δs²
の下で釣り合い経路を追跡する（shape = 0: 円筒, 1: 球面, 中間: 楕円）。

各反復で 2 回の線形求解を行う:
    K_T · δu_f = f          （単位荷重増分に対する解 incr_solution）
    K_T · δu_R = R          （残差に対する解 res_solution）
反復修正 δu = δu_R + δλ·δu_f の δλ は拘束条件の 2 次方程式の根から選ぶ。
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from fe_analyzers.core.protocols import ProviderProtocol
from fe_analyzers.model import AlgebraicModel
from fe_analyzers.nonlinear import (
    IncrementConfig,
    IncrementStrategy,
    IterationCallback,
    NonLinearAnalyzer,
    raise_if_cancelled,
)


@dataclass(frozen=True)
class ArcLengthConfig(IncrementConfig):
    """弧長法の設定.

    Attributes:
        shape: 拘束面の形状係数（0 = 円筒, 1 = 球面）
        num_of_iterations: 期待反復数（constant_constraint=False のとき弧長を
            Δs ← Δs·num_of_iterations/前増分の反復数 で調整）
        constant_constraint: 弧長 Δs を一定に保つか
    """

    shape: float = 0.0
    num_of_iterations: int = 4
    constant_constraint: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.strategy != IncrementStrategy.LOAD_CONTROL:
            raise ValueError(f"弧長法の strategy は LOAD_CONTROL のみ: {self.strategy}")
        if self.shape < 0.0:
            raise ValueError(f"shape は0以上: {self.shape}")
        if self.num_of_iterations < 1:
            raise ValueError(f"num_of_iterations は1以上: {self.num_of_iterations}")


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b)) / denom


def select_arc_length_root(
    du: np.ndarray,
    u: np.ndarray,
    u_plus_du: np.ndarray,
    incr_solution: np.ndarray,
    res_solution: np.ndarray,
    delta_s: float,
) -> tuple[float, np.ndarray]:
    """拘束条件の 2 次方程式から荷重係数の修正量 δλ を選ぶ.

    a·δλ² + b·δλ + c = 0,
        a = δu_f·δu_f, b = 2 δu_f·(du + δu_R), c = |du + δu_R|² - Δs²

    判別式が正なら 2 根のうち、更新後の増分 (u_plus_du + cur - u) と
    現在の増分 du のなす角の余弦が大きい方を採る（前進方向の維持）。
    判別式が 0 以下なら拘束面に最も近づく δλ = -b/(2a) を採る。

    Args:
        du: 現在の増分変位
        u: 前増分までの収束変位
        u_plus_du: u + du
        incr_solution: 単位荷重増分に対する解 δu_f
        res_solution: 残差に対する解 δu_R
        delta_s: 弧長 Δs

    Returns:
        (δλ, 反復修正量 δu_R + δλ·δu_f)
    """
    poly = du + res_solution
    a = float(np.dot(incr_solution, incr_solution))
    b = 2.0 * float(np.dot(incr_solution, poly))
    c = float(np.dot(poly, poly)) - delta_s**2
    det = b * b - 4.0 * a * c
    if det > 0.0:
        dlambda1 = (-b - math.sqrt(det)) / (2.0 * a)
        cur1 = res_solution + dlambda1 * incr_solution
        cosine1 = _cosine(du, u_plus_du + cur1 - u)
        dlambda2 = (-b + math.sqrt(det)) / (2.0 * a)
        cur2 = res_solution + dlambda2 * incr_solution
        cosine2 = _cosine(du, u_plus_du + cur2 - u)
        if cosine1 > cosine2:
            return dlambda1, cur1
        return dlambda2, cur2
    dlambda = -b / (2.0 * a)
    return dlambda, res_solution + dlambda * incr_solution


class ArcLengthAnalyzer(NonLinearAnalyzer):
    """弧長法の子アナライザ.

    Args:
        algebraic_model: 代数モデル
        provider: 物理プロバイダ
        config: ArcLengthConfig
        show_progress, iteration_callback, cancel: NonLinearAnalyzer と同じ

    Attributes:
        load_factor: 現在の荷重係数 λ（増分荷重 f/n に対する倍率）
        delta_s: 現在の弧長 Δs
    """

    algorithm_name = "Arc length"

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        config: ArcLengthConfig,
        *,
        show_progress: bool = True,
        iteration_callback: IterationCallback | None = None,
        cancel: Callable[[], bool] | None = None,
    ) -> None:
        if not isinstance(config, ArcLengthConfig):
            raise TypeError(f"config は ArcLengthConfig: {type(config).__name__}")
        super().__init__(
            algebraic_model,
            provider,
            config,
            show_progress=show_progress,
            iteration_callback=iteration_callback,
            cancel=cancel,
        )
        self.config: ArcLengthConfig = config
        self.load_factor = 0.0
        self.delta_s = 0.0
        self.previous_iterations = 0
        self.previous_increment_solution: np.ndarray | None = None

    def _statistics_name(self) -> str:
        return "Arc length analyzer"

    def initialize(self, is_first_analysis: bool = True) -> None:
        super().initialize(is_first_analysis)
        if is_first_analysis:
            self.load_factor = 0.0
            self.delta_s = 0.0
            self.previous_iterations = 0

    def _lambda_scale(self, incr_solution: np.ndarray) -> float:
        cfg = self.config
        return math.sqrt(
            cfg.shape**2 * self.load_factor**2 * float(np.dot(self.rhs, self.rhs))
            + float(np.dot(incr_solution, incr_solution))
        )

    def solve(self) -> None:
        """弧長法で全増分を解く."""
        if self.u is None:
            raise RuntimeError("initialize() が呼ばれていません")
        cfg = self.config
        n_inc = cfg.num_increments
        stats = self.analysis_statistics
        stats.iterations = 0
        stats.residual_norm_ratio = 0.0
        stats.converged = False
        not_converged = False

        rhs_increment = self.rhs
        rhs_residual = rhs_increment.copy()
        rhs_increment_norm = self.provider.calculate_rhs_norm(rhs_increment)
        self.previous_increment_solution = np.zeros_like(self.u)

        self._initialize_logs()
        start = time.time()
        dlambda = 1.0
        self.load_factor += dlambda
        for increment in range(n_inc):
            ratio = 0.0
            self.du[:] = 0.0
            iteration = 0
            for iteration in range(cfg.max_iterations_per_increment):
                raise_if_cancelled(self.cancel, f"increment {increment}, iteration {iteration}")
                stats.iterations += 1
                if iteration == cfg.max_iterations_per_increment - 1 or math.isnan(ratio):
                    not_converged = True
                    stats.residual_norm_ratio = ratio
                    if self.show_progress:
                        print(
                            f"  WARNING: Increment {increment + 1} did not converge in "
                            f"{iteration} iterations. ||R||/||f|| = {ratio:.3e}"
                        )
                    if cfg.stop_if_not_converged:
                        return
                    break

                self.linear_system.rhs = rhs_increment
                incr_solution = np.array(self.linear_system.solve(), dtype=float)
                self.linear_system.rhs = rhs_residual
                res_solution = np.array(self.linear_system.solve(), dtype=float)

                if iteration == 0 and increment == 0:
                    self.delta_s = dlambda * self._lambda_scale(incr_solution)
                    cur = dlambda * incr_solution
                elif iteration == 0:
                    if not cfg.constant_constraint:
                        self.delta_s = self.delta_s * cfg.num_of_iterations / self.previous_iterations
                    sign = 1.0 if float(np.dot(self.previous_increment_solution, incr_solution)) > 0.0 else -1.0
                    dlambda = sign * self.delta_s / self._lambda_scale(incr_solution)
                    self.load_factor += dlambda
                    cur = res_solution + dlambda * incr_solution
                else:
                    dlambda, cur = select_arc_length_root(
                        self.du, self.u, self.u_plus_du, incr_solution, res_solution, self.delta_s
                    )
                    self.load_factor += dlambda
                self._update_solution(increment, iteration, cur)

                internal = self._calculate_internal_rhs()
                rhs_residual = self.load_factor * rhs_increment - internal
                self.linear_system.rhs = rhs_residual
                norm = self.provider.calculate_rhs_norm(rhs_residual)
                ratio = norm / rhs_increment_norm if rhs_increment_norm != 0.0 else 0.0

                self._log_iteration(increment, iteration, ratio)
                if self.show_progress and iteration % 5 == 0:
                    print(
                        f"  Increment {increment + 1}/{n_inc}, iter {iteration}, "
                        f"λ = {self.load_factor:.6f}, ||R||/||f|| = {ratio:.3e}"
                    )

                if ratio < cfg.residual_tolerance:
                    if stats.residual_norm_ratio < ratio:
                        stats.residual_norm_ratio = ratio
                    self._log_converged_increment(increment, iteration, ratio, internal)
                    break

                if (iteration + 1) % cfg.num_iterations_for_matrix_rebuild == 0:
                    self.provider.reset()
                    self.build_matrices()

            self.previous_iterations = iteration + 1
            self.previous_increment_solution = self.du.copy()
            self._save_state_and_update_solution()

        stats.converged = not not_converged
        self._store_log_results(start, time.time())
