"""静解析の親アナライザと線形子アナライザ.

  StaticAnalyzer (親) ── 剛性行列・外力を線形系へ設定
      └─ LinearAnalyzer / NonLinearAnalyzer / ArcLengthAnalyzer (子) ── 求解
"""

from __future__ import annotations

import time
from typing import Any

import numpy as np

from fe_analyzers.core.protocols import (
    ChildAnalyzerProtocol,
    DifferentiationOrder,
    ParentContract,
    ProviderProtocol,
)
from fe_analyzers.core.results import AnalysisStatistics
from fe_analyzers.core.state import AnalyzerState, StaticState, check_state_type
from fe_analyzers.logs import LinearAnalyzerLogFactory
from fe_analyzers.model import AlgebraicModel


class LinearAnalyzer:
    """1 回の線形求解を行う子アナライザ.

    非ゼロの規定変位がある場合は、その等価節点力を右辺から差し引いてから解く。
    """

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        *,
        show_progress: bool = True,
    ) -> None:
        self.algebraic_model = algebraic_model
        self.provider = provider
        self.show_progress = show_progress
        self.parent: ParentContract | None = None
        self.analysis_statistics = AnalysisStatistics(algorithm_name="Linear analyzer")
        self.log_factory: LinearAnalyzerLogFactory | None = None
        self.logs: list[Any] = []

    @property
    def linear_system(self) -> Any:
        return self.algebraic_model.linear_system

    @property
    def current_analysis_result(self) -> np.ndarray:
        solution = self.linear_system.solution
        if solution is None:
            raise RuntimeError("線形系が未求解です")
        return solution

    def build_matrices(self) -> None:
        if self.parent is None:
            raise RuntimeError("線形アナライザに親アナライザがありません")
        self.parent.build_matrices()

    def initialize(self, is_first_analysis: bool = True) -> None:
        self.logs = list(self.log_factory.create_logs()) if self.log_factory is not None else []

    def solve(self) -> None:
        start = time.time()
        zero = self.algebraic_model.create_zero_vector()
        loads = self.provider.get_equivalent_nodal_loads(zero, 1.0)
        rhs = self.linear_system.rhs - loads
        self.linear_system.rhs = rhs
        x = self.linear_system.solve()
        end = time.time()

        rhs_norm = float(np.linalg.norm(rhs))
        residual = rhs - np.asarray(self.linear_system.matrix @ x, dtype=float).reshape(-1)
        stats = self.analysis_statistics
        stats.iterations = 1
        stats.converged = True
        stats.residual_norm_ratio = float(np.linalg.norm(residual)) / rhs_norm if rhs_norm != 0.0 else 0.0
        if self.show_progress:
            print(f"  Linear solve: n={x.shape[0]}, ||r||/||b|| = {stats.residual_norm_ratio:.3e}")

        for log in self.logs:
            log.store_results(start, end, x)


class StaticAnalyzer:
    """静解析の親アナライザ.

    Args:
        algebraic_model: 代数モデル
        provider: 物理プロバイダ
        child_analyzer: 子アナライザ（線形 / 非線形 / 弧長法）
    """

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
    ) -> None:
        self.algebraic_model = algebraic_model
        self.provider = provider
        self.child_analyzer = child_analyzer
        self.logs: list[Any] = []
        if child_analyzer is not None:
            child_analyzer.parent = ParentContract(
                build_matrices=self.build_matrices,
                get_other_rhs_components=self.get_other_rhs_components,
                create_state=self.create_state,
            )

    @property
    def analysis_statistics(self) -> AnalysisStatistics:
        return self._require_child().analysis_statistics

    @property
    def current_analysis_result(self) -> np.ndarray | None:
        if self.child_analyzer is None:
            return None
        return self.child_analyzer.current_analysis_result

    def _require_child(self) -> ChildAnalyzerProtocol:
        if self.child_analyzer is None:
            raise RuntimeError("静解析アナライザには子アナライザが必要です")
        return self.child_analyzer

    def create_state(self) -> StaticState:
        return StaticState()

    def restore_state(self, state: AnalyzerState) -> None:
        check_state_type(state, StaticState)

    def build_matrices(self) -> None:
        """剛性行列（0 階行列）を線形系へ設定する."""
        self.algebraic_model.linear_system.matrix = self.provider.get_matrix(DifferentiationOrder.ZERO)

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray:
        return self.algebraic_model.create_zero_vector()

    def initialize(self, is_first_analysis: bool = True) -> None:
        if is_first_analysis:
            self.algebraic_model.order_dofs()
        self.build_matrices()
        self.algebraic_model.linear_system.rhs = self.provider.get_rhs(0.0)
        self._require_child().initialize(is_first_analysis)

    def solve(self) -> None:
        self._require_child().solve()
