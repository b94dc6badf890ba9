"""連成問題の分離反復（staggered）解析.

複数の親アナライザ（それぞれ独自の線形系を持つ）を順に解き、
全線形系の解ノルムの和が収束するまで反復する。反復の合間に
create_new_model(analyzers, linear_systems) を呼んで、他の場の解を
各モデルへ受け渡す（連成項の更新は呼び出し側の責務）。

  誤差 = |Σ||x_i|| - 前回の Σ||x_i||| / Σ||x_i||（Σ = 0 なら 0）
  rounds < max_staggered_steps かつ 誤差 > tolerance の間反復する。

  StaggeredAnalyzer          : 各アナライザの solve() を丸ごと反復
  StepwiseStaggeredAnalyzer  : 時間ステップ毎に solve_current_step() を反復し、
                               収束後に全アナライザの advance_step() を呼ぶ
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from fe_analyzers.core.protocols import LinearSystemProtocol, ParentAnalyzerProtocol, StepwiseAnalyzerProtocol
from fe_analyzers.core.results import AnalysisStatistics
from fe_analyzers.core.state import AnalyzerState, StaticState
from fe_analyzers.nonlinear import raise_if_cancelled

CreateNewModel = Callable[[Sequence[Any], Sequence[LinearSystemProtocol]], None]


@dataclass(frozen=True)
class StaggeredConfig:
    """分離反復の設定.

    Attributes:
        max_staggered_steps: 分離反復の上限回数（上限到達時は最終回の誤差で収束を判定）
        tolerance: 解ノルム変化率の収束判定値
    """

    max_staggered_steps: int
    tolerance: float

    def __post_init__(self) -> None:
        if self.max_staggered_steps < 1:
            raise ValueError(f"max_staggered_steps は1以上: {self.max_staggered_steps}")
        if not self.tolerance > 0.0:
            raise ValueError(f"tolerance は正値: {self.tolerance}")


def _statistics_list(analyzer: Any) -> list[AnalysisStatistics]:
    """アナライザの収束記録をコピーのリストとして返す（時間積分はステップ毎のリスト）."""
    stats = analyzer.analysis_statistics
    if isinstance(stats, AnalysisStatistics):
        return [stats.copy()]
    return [s.copy() for s in stats]


class StaggeredAnalyzer:
    """分離反復アナライザ.

    Args:
        analyzers: 親アナライザ列
        linear_systems: 各アナライザの線形系（analyzers と同じ並び）
        create_new_model: 反復の合間に呼ばれる連成更新 (analyzers, linear_systems) -> None
        config: StaggeredConfig
        show_progress: 反復毎の誤差表示
        cancel: 反復毎に呼ばれ、True を返すと AnalysisCancelled

    Attributes:
        analysis_statistics: iterations = 反復回数, residual_norm_ratio = 最終誤差
        nested_analysis_statistics: 反復毎・アナライザ毎の収束記録
        current_solutions: 各反復の開始時点の解のコピー
    """

    algorithm_name = "Staggered analyzer"

    def __init__(
        self,
        analyzers: Sequence[ParentAnalyzerProtocol],
        linear_systems: Sequence[LinearSystemProtocol],
        create_new_model: CreateNewModel,
        config: StaggeredConfig,
        *,
        show_progress: bool = True,
        cancel: Callable[[], bool] | None = None,
    ) -> None:
        if analyzers is None:
            raise ValueError("analyzers が None です")
        if linear_systems is None:
            raise ValueError("linear_systems が None です")
        if len(analyzers) != len(linear_systems):
            raise ValueError(
                f"analyzers と linear_systems の数が一致しません: {len(analyzers)} != {len(linear_systems)}"
            )
        self.analyzers = list(analyzers)
        self.linear_systems = list(linear_systems)
        self.create_new_model = create_new_model
        self.config = config
        self.show_progress = show_progress
        self.cancel = cancel

        self.analysis_statistics = AnalysisStatistics(algorithm_name=self.algorithm_name)
        self.nested_analysis_statistics: list[list[list[AnalysisStatistics]]] = []
        self.current_solutions: list[np.ndarray | None] = [None] * len(self.analyzers)
        self.logs: list[Any] = []

    @property
    def current_analysis_result(self) -> np.ndarray:
        raise RuntimeError("分離反復には複数の解があります。各アナライザの current_analysis_result を使用してください")

    def create_state(self) -> AnalyzerState:
        return StaticState()

    def build_matrices(self) -> None:
        for analyzer in self.analyzers:
            analyzer.build_matrices()

    def initialize(self, is_first_analysis: bool = True) -> None:
        for analyzer in self.analyzers:
            analyzer.initialize(is_first_analysis)

    def _solution_norm(self) -> float:
        total = 0.0
        for i, ls in enumerate(self.linear_systems):
            if ls.solution is None:
                raise RuntimeError(f"線形系 {i} が未求解です")
            total += float(np.linalg.norm(ls.solution))
        return total

    def _solve_rounds(self, solve_methods: Sequence[Callable[[], None]]) -> None:
        """収束するまで solve_methods を順に呼ぶ分離反復."""
        cfg = self.config
        rounds = 0
        solution_norm = 0.0
        error = 0.0
        while True:
            raise_if_cancelled(self.cancel, f"staggered step {rounds}")
            previous_norm = solution_norm
            current_statistics: list[list[AnalysisStatistics]] = []
            for i, solve in enumerate(solve_methods):
                solution = self.linear_systems[i].solution
                if solution is not None:
                    self.current_solutions[i] = np.array(solution, dtype=float)
                solve()
                current_statistics.append(_statistics_list(self.analyzers[i]))
            self.nested_analysis_statistics.append(current_statistics)

            solution_norm = self._solution_norm()
            error = abs(solution_norm - previous_norm) / solution_norm if solution_norm != 0.0 else 0.0
            if self.show_progress:
                print(f"  Staggered step {rounds}, error = {error:.3e}")
            rounds += 1

            if not (rounds < cfg.max_staggered_steps and error > cfg.tolerance):
                break
            self.create_new_model(self.analyzers, self.linear_systems)

        stats = self.analysis_statistics
        stats.iterations = rounds
        stats.residual_norm_ratio = error
        stats.converged = error <= cfg.tolerance

    def solve(self) -> None:
        self._solve_rounds([a.solve for a in self.analyzers])


class StepwiseStaggeredAnalyzer(StaggeredAnalyzer):
    """時間ステップ毎に分離反復を行うアナライザ.

    ステップ数は StepwiseAnalyzerProtocol を満たすアナライザの steps の最大値。
    ステップを持たないアナライザは毎回 solve() を、終端に達した
    アナライザは何もしない。
    """

    algorithm_name = "Stepwise staggered analyzer"

    @property
    def steps(self) -> int:
        return max(
            (a.steps for a in self.analyzers if isinstance(a, StepwiseAnalyzerProtocol)),
            default=0,
        )

    def _stepwise_active(self, analyzer: Any) -> bool:
        return isinstance(analyzer, StepwiseAnalyzerProtocol) and analyzer.current_step < analyzer.steps

    def solve_current_step(self) -> None:
        """現在ステップを分離反復で解く（ステップは進めない）."""
        methods: list[Callable[[], None]] = []
        for analyzer in self.analyzers:
            if isinstance(analyzer, StepwiseAnalyzerProtocol):
                methods.append(analyzer.solve_current_step if self._stepwise_active(analyzer) else _noop)
            else:
                methods.append(analyzer.solve)
        self._solve_rounds(methods)

    def advance_step(self) -> None:
        for analyzer in self.analyzers:
            if self._stepwise_active(analyzer):
                analyzer.advance_step()

    def solve(self) -> None:
        for _ in range(self.steps):
            self.solve_current_step()
            self.advance_step()


def _noop() -> None:
    return None
