"""時間積分アナライザの共通部.

全スキームで共通の流れ:
  initialize()          DOF 番号付け → 子の初期化 → 状態ベクトル確保 → 有効行列の構築
  solve_current_step()  外力 f(t_n) から右辺を作り、子アナライザで u_{n+1} を解く
  advance_step()        微分量・履歴を更新し、ステップを進める
  solve()               上記を current_step < steps の間繰り返す

子アナライザには ParentContract（build_matrices, get_other_rhs_components,
create_state）だけを渡す。
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from fe_analyzers.core.protocols import (
    ChildAnalyzerProtocol,
    DifferentiationOrder,
    ParentContract,
    ProviderProtocol,
    TransientAnalysisPhase,
)
from fe_analyzers.core.results import AnalysisStatistics
from fe_analyzers.core.state import AnalyzerState
from fe_analyzers.logs import ImplicitIntegrationAnalyzerLog
from fe_analyzers.model import AlgebraicModel
from fe_analyzers.nonlinear import raise_if_cancelled

StepCallback = Callable[[int, AnalysisStatistics], None]


@dataclass(frozen=True)
class TimeIntegrationConfig:
    """時間積分の共通設定.

    Attributes:
        time_step: 時間刻み Δt
        total_time: 解析時間 T（ステップ数 = floor(T/Δt)）
    """

    time_step: float
    total_time: float

    def __post_init__(self) -> None:
        if not self.time_step > 0.0:
            raise ValueError(f"time_step は正値: {self.time_step}")
        if not self.total_time > 0.0:
            raise ValueError(f"total_time は正値: {self.total_time}")
        if not math.isfinite(self.total_time / self.time_step):
            raise ValueError(f"total_time / time_step が有限値ではありません: {self.total_time}")

    @property
    def steps(self) -> int:
        """ステップ数 floor(T/Δt)（T/Δt の丸め誤差は吸収する）."""
        return int(math.floor(self.total_time / self.time_step * (1.0 + 1e-12)))


class TransientAnalyzerBase:
    """時間積分アナライザの基底.

    サブクラスは以下を実装する:
      _initialize_internal_vectors, build_matrices, get_other_rhs_components,
      _calculate_rhs, _update_derivatives, current_analysis_result,
      create_state, restore_state

    Args:
        algebraic_model: 代数モデル
        provider: 物理プロバイダ
        child_analyzer: 子アナライザ
        config: スキーム設定
        show_progress: ステップ毎の進捗表示
        step_callback: ステップ完了毎に (step, statistics) で呼ばれる
        cancel: ステップ毎に呼ばれ、True を返すと AnalysisCancelled

    Attributes:
        analysis_statistics: ステップ毎の子アナライザの収束記録
        result_storage: 各ステップの子ログを集める ImplicitIntegrationAnalyzerLog
    """

    algorithm_name = "Transient analyzer"
    max_problem_order = DifferentiationOrder.SECOND

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
        config: TimeIntegrationConfig,
        *,
        show_progress: bool = True,
        step_callback: StepCallback | None = None,
        cancel: Callable[[], bool] | None = None,
    ) -> None:
        if provider.problem_order > self.max_problem_order:
            raise ValueError(
                f"{self.algorithm_name} の問題階数は {int(self.max_problem_order)} 以下: "
                f"{int(provider.problem_order)}"
            )
        self.algebraic_model = algebraic_model
        self.provider = provider
        self.child_analyzer = child_analyzer
        self.config = config
        self.show_progress = show_progress
        self.step_callback = step_callback
        self.cancel = cancel

        self._current_step = 0
        self.phase = TransientAnalysisPhase.SOLUTION
        self.analysis_statistics: list[AnalysisStatistics] = [
            AnalysisStatistics(algorithm_name=self.algorithm_name) for _ in range(config.steps)
        ]
        self.result_storage: ImplicitIntegrationAnalyzerLog | None = None
        self.logs: list[Any] = []
        self._start = 0.0
        self._end = 0.0

        if child_analyzer is not None:
            child_analyzer.parent = ParentContract(
                build_matrices=self.build_matrices,
                get_other_rhs_components=self.get_other_rhs_components,
                create_state=self.create_state,
            )

    # ----------------------------------------------------------------
    # プロパティ
    # ----------------------------------------------------------------

    @property
    def time_step(self) -> float:
        return self.config.time_step

    @property
    def steps(self) -> int:
        return self.config.steps

    @property
    def current_step(self) -> int:
        return self._current_step

    @property
    def time(self) -> float:
        """現在ステップの時刻 t_n = n·Δt."""
        return self._current_step * self.config.time_step

    @property
    def linear_system(self) -> Any:
        return self.algebraic_model.linear_system

    @property
    def current_analysis_result(self) -> np.ndarray:
        raise NotImplementedError

    def _require_child(self) -> ChildAnalyzerProtocol:
        if self.child_analyzer is None:
            raise RuntimeError(f"{self.algorithm_name} には子アナライザが必要です")
        return self.child_analyzer

    def _set_phase(self, phase: TransientAnalysisPhase) -> None:
        self.phase = phase
        self.provider.set_transient_analysis_phase(phase)

    def _solve_initial_condition_system(self, order: DifferentiationOrder, rhs: np.ndarray) -> np.ndarray:
        """初期条件評価フェーズで A_order·x = rhs を子アナライザに解かせる.

        終了後はフェーズを SOLUTION に戻す。有効行列は呼び出し側で組み直すこと。
        """
        child = self._require_child()
        self._set_phase(TransientAnalysisPhase.INITIAL_CONDITION_EVALUATION)
        try:
            self.linear_system.matrix = self.provider.get_matrix(order)
            self.linear_system.rhs = rhs
            child.initialize(False)
            child.solve()
            return np.array(self.linear_system.solution, dtype=float)
        finally:
            self._set_phase(TransientAnalysisPhase.SOLUTION)

    # ----------------------------------------------------------------
    # スキーム固有のフック
    # ----------------------------------------------------------------

    def _initialize_internal_vectors(self) -> None:
        raise NotImplementedError

    def build_matrices(self) -> None:
        raise NotImplementedError

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _calculate_rhs(self) -> np.ndarray:
        raise NotImplementedError

    def _update_derivatives(self) -> None:
        raise NotImplementedError

    def create_state(self) -> AnalyzerState:
        raise NotImplementedError

    def restore_state(self, state: AnalyzerState) -> None:
        raise NotImplementedError

    # ----------------------------------------------------------------
    # 駆動
    # ----------------------------------------------------------------

    def initialize(self, is_first_analysis: bool = True) -> None:
        child = self._require_child()
        if is_first_analysis:
            self.algebraic_model.order_dofs()
        child.initialize(is_first_analysis)
        self._initialize_internal_vectors()
        self.build_matrices()

    def solve_current_step(self) -> None:
        """現在ステップの u_{n+1} を解く（状態の更新は advance_step）."""
        self._require_child()
        self._set_phase(TransientAnalysisPhase.SOLUTION)
        self.linear_system.rhs = self._calculate_rhs()
        self._solve_child()

    def _solve_child(self) -> None:
        child = self._require_child()
        step = self._current_step
        self._start = time.time()
        child.initialize(False)
        child.solve()
        self._end = time.time()

        stats = child.analysis_statistics.copy()
        stats.algorithm_name = self.algorithm_name
        if step < len(self.analysis_statistics):
            self.analysis_statistics[step] = stats
        else:
            self.analysis_statistics.append(stats)

        if self.show_progress:
            print(
                f"  Step {step + 1}/{self.steps}, t = {(step + 1) * self.time_step:.4e}, "
                f"iter {stats.iterations}, ||R||/||f|| = {stats.residual_norm_ratio:.3e}"
            )
        if self.step_callback is not None:
            self.step_callback(step, stats)

    def advance_step(self) -> None:
        """微分量と履歴を更新し、子のログを保存してステップを進める."""
        self._update_derivatives()
        if self.result_storage is not None:
            for log in self._require_child().logs:
                self.result_storage.store_results(self._start, self._end, log)
        self._current_step += 1

    def solve(self) -> None:
        """残りの全ステップを解く."""
        self._require_child()
        while self._current_step < self.steps:
            raise_if_cancelled(self.cancel, f"step {self._current_step}")
            self.solve_current_step()
            self.advance_step()
