"""増分反復型の非線形ソルバー（子アナライザ）.

親アナライザ（静解析・時間積分）が有効行列と右辺を線形系に設定した後、
本ソルバーが荷重を num_increments に等分割し、各増分で Newton-Raphson 反復を行う。

増分戦略（IncrementStrategy）:
  - LOAD_CONTROL:         荷重制御
  - DISPLACEMENT_CONTROL: 変位制御（規定変位を増分毎に (inc+1)/n 倍で適用）
  - TRIALS:               荷重制御 + 試行ステップ（解の 1/4..4/4 から残差最小を採用）

残差: R = (inc+1)·f/n - f_int(u + du) - f_other(u + du)
    f_other は親の慣性・減衰等の擬似内力（ParentContract.get_other_rhs_components）
収束判定: ||R|| / ||f|| < residual_tolerance（||f|| = 0 なら比 = 0）
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from fe_analyzers.core.protocols import ParentContract, ProviderProtocol
from fe_analyzers.core.results import AnalysisStatistics
from fe_analyzers.core.state import AnalyzerState, IncrementState, check_state_type, restore_vector
from fe_analyzers.logs import (
    IncrementalDisplacementsLog,
    LinearAnalyzerLogFactory,
    TotalDisplacementsPerIterationLog,
    TotalLoadsDisplacementsPerIncrementLog,
)
from fe_analyzers.model import AlgebraicModel

IterationCallback = Callable[[int, int, float], None]

_TRIAL_FACTORS = (0.25, 0.5, 0.75, 1.0)


class AnalysisCancelled(RuntimeError):
    """cancel コールバックにより解析が中断された."""


def raise_if_cancelled(cancel: Callable[[], bool] | None, where: str) -> None:
    """cancel() が True なら AnalysisCancelled を送出する."""
    if cancel is not None and cancel():
        raise AnalysisCancelled(f"解析が中断されました ({where})")


# ====================================================================
# 設定
# ====================================================================


class IncrementStrategy(Enum):
    """荷重増分の戦略."""

    LOAD_CONTROL = "load_control"
    DISPLACEMENT_CONTROL = "displacement_control"
    TRIALS = "trials"


@dataclass(frozen=True)
class IncrementConfig:
    """増分反復ソルバーの設定.

    Attributes:
        num_increments: 荷重増分数
        stop_if_not_converged: 非収束時に解析全体を打ち切るか（False なら次の増分へ進む）
        max_iterations_per_increment: 増分あたりの反復上限（2以上. 最後の反復は求解せず非収束と判定する）
        num_iterations_for_matrix_rebuild: 接線行列の再構築間隔（1 = 完全 NR, 2 以上 = 修正 NR）
        residual_tolerance: 残差ノルム比の収束判定値
        strategy: 増分戦略
    """

    num_increments: int
    stop_if_not_converged: bool
    max_iterations_per_increment: int = 1000
    num_iterations_for_matrix_rebuild: int = 1
    residual_tolerance: float = 1e-3
    strategy: IncrementStrategy = IncrementStrategy.LOAD_CONTROL

    def __post_init__(self) -> None:
        if self.num_increments < 1:
            raise ValueError(f"num_increments は1以上: {self.num_increments}")
        if self.max_iterations_per_increment < 2:
            raise ValueError(f"max_iterations_per_increment は2以上: {self.max_iterations_per_increment}")
        if self.num_iterations_for_matrix_rebuild < 1:
            raise ValueError(
                f"num_iterations_for_matrix_rebuild は1以上: {self.num_iterations_for_matrix_rebuild}"
            )
        if not self.residual_tolerance > 0.0:
            raise ValueError(f"residual_tolerance は正値: {self.residual_tolerance}")
        if not isinstance(self.strategy, IncrementStrategy):
            raise ValueError(f"strategy が不正: {self.strategy}")


# ====================================================================
# 非線形増分ソルバー
# ====================================================================


class NonLinearAnalyzer:
    """荷重制御 / 変位制御 / 試行ステップ付きの Newton-Raphson 子アナライザ.

    Args:
        algebraic_model: 代数モデル（線形系を持つ）
        provider: 物理プロバイダ
        config: IncrementConfig
        show_progress: 進捗表示
        iteration_callback: 反復毎に (increment, iteration, ratio) で呼ばれる
        cancel: 反復毎に呼ばれ、True を返すと AnalysisCancelled

    Attributes:
        parent: 親の操作ビュー（親アナライザが設定する）
        analysis_statistics: 直近の solve() の収束記録
        log_factory: 解析毎に logs を生成するファクトリ
        total_displacements_per_iteration_log: 反復毎の u + du
        incremental_displacements_log: 増分毎の u + du
        incremental_log: 収束した増分の荷重-変位
    """

    algorithm_name = "Newton-Raphson"

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        config: IncrementConfig,
        *,
        show_progress: bool = True,
        iteration_callback: IterationCallback | None = None,
        cancel: Callable[[], bool] | None = None,
    ) -> None:
        self.algebraic_model = algebraic_model
        self.provider = provider
        self.config = config
        self.show_progress = show_progress
        self.iteration_callback = iteration_callback
        self.cancel = cancel

        self.parent: ParentContract | None = None
        self.analysis_statistics = AnalysisStatistics(algorithm_name=self._statistics_name())
        self.log_factory: LinearAnalyzerLogFactory | None = None
        self.logs: list[Any] = []
        self.total_displacements_per_iteration_log: TotalDisplacementsPerIterationLog | None = None
        self.incremental_displacements_log: IncrementalDisplacementsLog | None = None
        self.incremental_log: TotalLoadsDisplacementsPerIncrementLog | None = None

        self.u: np.ndarray | None = None
        self.du: np.ndarray | None = None
        self.u_plus_du: np.ndarray | None = None
        self.rhs: np.ndarray | None = None
        self.rhs_norm_initial = 0.0

    def _statistics_name(self) -> str:
        if self.config.strategy == IncrementStrategy.DISPLACEMENT_CONTROL:
            return "Displacement control"
        if self.config.strategy == IncrementStrategy.TRIALS:
            return "Load control with trials"
        return "Load control"

    @property
    def linear_system(self) -> Any:
        return self.algebraic_model.linear_system

    @property
    def current_analysis_result(self) -> np.ndarray:
        """収束済みの解 u."""
        if self.u is None:
            raise RuntimeError("initialize() が呼ばれていません")
        return self.u

    # ----------------------------------------------------------------
    # 状態
    # ----------------------------------------------------------------

    def create_state(self) -> IncrementState:
        return IncrementState(current_solution=self.current_analysis_result.copy())

    def restore_state(self, state: AnalyzerState) -> None:
        state = check_state_type(state, IncrementState)
        if self.u is None:
            self.u = self.algebraic_model.create_zero_vector()
        restore_vector(self.u, state.current_solution, "current_solution")

    # ----------------------------------------------------------------
    # 初期化
    # ----------------------------------------------------------------

    def initialize(self, is_first_analysis: bool = True) -> None:
        """内部ベクトルを確保し、現在の線形系右辺から増分荷重を作る.

        is_first_analysis=False の場合は u を保持する（時間積分での継続用）。
        """
        n = self.algebraic_model.create_zero_vector().shape[0]
        if self.u is None or self.u.shape[0] != n:
            self.u = np.zeros(n, dtype=float)
        elif is_first_analysis:
            self.u[:] = 0.0
        self.du = np.zeros(n, dtype=float)
        self.u_plus_du = np.zeros(n, dtype=float)
        self._update_internal_vectors()

    def _update_internal_vectors(self) -> None:
        total_rhs = np.array(self.linear_system.rhs, dtype=float)
        self.rhs = total_rhs / self.config.num_increments
        self.rhs_norm_initial = self.provider.calculate_rhs_norm(total_rhs)

    def build_matrices(self) -> None:
        """接線行列の再構築を親へ依頼する."""
        if self.parent is None:
            raise RuntimeError(f"{self.algorithm_name} アナライザに親アナライザがありません")
        self.parent.build_matrices()

    # ----------------------------------------------------------------
    # ログ
    # ----------------------------------------------------------------

    def _initialize_logs(self) -> None:
        if self.log_factory is not None:
            self.logs = list(self.log_factory.create_logs())
        if self.incremental_log is not None:
            self.incremental_log.initialize()

    def _store_log_results(self, start: float, end: float) -> None:
        for log in self.logs:
            log.store_results(start, end, self.u)

    def _log_iteration(self, increment: int, iteration: int, ratio: float) -> None:
        if self.iteration_callback is not None:
            self.iteration_callback(increment, iteration, ratio)
        if self.incremental_displacements_log is not None:
            self.incremental_displacements_log.store_displacements(self.u_plus_du)
        if self.total_displacements_per_iteration_log is not None:
            self.total_displacements_per_iteration_log.store_displacements(self.u_plus_du)

    def _log_converged_increment(
        self, increment: int, iteration: int, ratio: float, internal_rhs: np.ndarray
    ) -> None:
        if self.incremental_log is not None:
            self.incremental_log.log_total_data_for_increment(
                increment, iteration, ratio, self.u_plus_du, internal_rhs
            )

    # ----------------------------------------------------------------
    # 残差
    # ----------------------------------------------------------------

    def _update_solution(self, increment: int, iteration: int, solution: np.ndarray) -> None:
        """du と u + du を解ベクトルで更新する.

        最初の増分の最初の反復では solution を全量の推定値として扱う（du = solution - u）。
        """
        if increment == 0 and iteration == 0:
            self.du[:] = solution - self.u
        else:
            self.du += solution
        self.u_plus_du[:] = self.u + self.du

    def _calculate_internal_rhs(self) -> np.ndarray:
        """u + du における内力（+ 親の擬似内力）."""
        internal = np.array(self.provider.calculate_response_integral_vector(self.u_plus_du), dtype=float)
        self.provider.process_internal_rhs(self.u_plus_du, internal)
        if self.parent is not None:
            internal += self.parent.get_other_rhs_components(self.u_plus_du)
        return internal

    def _update_residual_and_ratio(self, increment: int, internal: np.ndarray) -> float:
        residual = (increment + 1) * self.rhs - internal
        self.linear_system.rhs = residual
        norm = self.provider.calculate_rhs_norm(residual)
        return norm / self.rhs_norm_initial if self.rhs_norm_initial != 0.0 else 0.0

    def _evaluate_trials(self, increment: int, iteration: int, solution: np.ndarray) -> float:
        """試行ステップの中で残差比が最小の倍率を返す（同値なら小さい倍率）."""
        saved = (self.u.copy(), self.du.copy(), self.u_plus_du.copy())
        best_factor = _TRIAL_FACTORS[0]
        best_ratio = math.inf
        for factor in _TRIAL_FACTORS:
            self._update_solution(increment, iteration, factor * solution)
            ratio = self._update_residual_and_ratio(increment, self._calculate_internal_rhs())
            if ratio < best_ratio:
                best_factor, best_ratio = factor, ratio
            self.u[:], self.du[:], self.u_plus_du[:] = saved
        return best_factor

    # ----------------------------------------------------------------
    # 求解
    # ----------------------------------------------------------------

    def solve(self) -> None:
        """全増分を解く.

        非収束（反復上限到達・残差比 NaN）は例外ではなく analysis_statistics.converged=False
        で報告する。stop_if_not_converged=True ならその時点で打ち切る。
        """
        if self.u is None:
            raise RuntimeError("initialize() が呼ばれていません")
        cfg = self.config
        n_inc = cfg.num_increments
        stats = self.analysis_statistics
        stats.iterations = 0
        stats.residual_norm_ratio = 0.0
        stats.converged = False
        not_converged = False

        self._initialize_logs()
        start = time.time()
        for increment in range(n_inc):
            ratio = 0.0
            self.du[:] = 0.0
            self.linear_system.rhs = self.rhs
            if cfg.strategy == IncrementStrategy.DISPLACEMENT_CONTROL:
                self.provider.scale_constraints((increment + 1) / n_inc)

            converged_increment = False
            for iteration in range(cfg.max_iterations_per_increment):
                raise_if_cancelled(self.cancel, f"increment {increment}, iteration {iteration}")
                if iteration == cfg.max_iterations_per_increment - 1 or math.isnan(ratio):
                    not_converged = True
                    stats.residual_norm_ratio = ratio
                    if self.show_progress:
                        print(
                            f"  WARNING: Increment {increment + 1} did not converge in "
                            f"{iteration} iterations. ||R||/||f|| = {ratio:.3e}"
                        )
                    if cfg.stop_if_not_converged:
                        stats.converged = False
                        return
                    break

                if cfg.strategy == IncrementStrategy.DISPLACEMENT_CONTROL and iteration == 0:
                    self._add_equivalent_nodal_loads()

                stats.iterations += 1
                solution = np.array(self.linear_system.solve(), dtype=float)

                if cfg.strategy == IncrementStrategy.TRIALS:
                    factor = self._evaluate_trials(increment, iteration, solution)
                    solution = factor * solution
                self._update_solution(increment, iteration, solution)
                internal = self._calculate_internal_rhs()
                ratio = self._update_residual_and_ratio(increment, internal)
                stats.residual_norm_ratio = ratio

                self._log_iteration(increment, iteration, ratio)
                if self.show_progress and iteration % 5 == 0:
                    print(f"  Increment {increment + 1}/{n_inc}, iter {iteration}, ||R||/||f|| = {ratio:.3e}")

                if ratio < cfg.residual_tolerance:
                    converged_increment = True
                    self._log_converged_increment(increment, iteration, ratio, internal)
                    break

                if (iteration + 1) % cfg.num_iterations_for_matrix_rebuild == 0:
                    self.provider.reset()
                    self.build_matrices()

            if converged_increment and self.show_progress:
                print(
                    f"  Increment {increment + 1}/{n_inc}, iter {iteration}, "
                    f"||R||/||f|| = {ratio:.3e} (converged)"
                )
            self._save_state_and_update_solution()

        stats.converged = not not_converged
        self._store_log_results(start, time.time())

    def _add_equivalent_nodal_loads(self) -> None:
        """規定変位の増分による等価節点力を右辺から差し引く."""
        loads = self.provider.get_equivalent_nodal_loads(self.u, 1.0 / self.config.num_increments)
        rhs = self.linear_system.rhs - loads
        self.linear_system.rhs = rhs
        if self.rhs_norm_initial == 0.0:
            self.rhs_norm_initial = self.provider.calculate_rhs_norm(rhs)

    def _save_state_and_update_solution(self) -> None:
        state = self.parent.create_state() if self.parent is not None else None
        self.provider.update_state(state)
        self.u += self.du
