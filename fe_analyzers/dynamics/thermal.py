"""θ 法（一般化台形則）による非定常熱伝導解析.

    C·Ṫ + K·T = q(t)

有効行列:  C/Δt + β·K
右辺:      (1-β)·q_prev + β·q(t_n) + C·T_n/Δt - (1-β)·K·T_n

β = 0: 前進 Euler（陽的）、β = 1/2: Crank-Nicolson（デフォルト）、β = 1: 後退 Euler。
C は 1 階行列（熱容量）、K は 0 階行列（伝導）としてプロバイダから取得する。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from fe_analyzers.core.protocols import ChildAnalyzerProtocol, DifferentiationOrder, ProviderProtocol
from fe_analyzers.core.results import TransientAnalysisCoefficients
from fe_analyzers.core.state import AnalyzerState, ThermalState, check_state_type, restore_vector
from fe_analyzers.dynamics.base import StepCallback, TimeIntegrationConfig, TransientAnalyzerBase
from fe_analyzers.model import AlgebraicModel


@dataclass(frozen=True)
class ThermalConfig(TimeIntegrationConfig):
    """θ 法の設定.

    Attributes:
        beta: 重み β ∈ [0, 1]
    """

    beta: float = 0.5

    def __post_init__(self) -> None:
        super().__post_init__()
        if not 0.0 <= self.beta <= 1.0:
            raise ValueError(f"beta は [0, 1]: {self.beta}")


class ThermalDynamicAnalyzer(TransientAnalyzerBase):
    """θ 法の非定常熱伝導アナライザ（問題階数 ≤ 1）."""

    algorithm_name = "Thermal dynamic analyzer"
    max_problem_order = DifferentiationOrder.FIRST

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
        config: ThermalConfig,
        *,
        show_progress: bool = True,
        step_callback: StepCallback | None = None,
        cancel: Callable[[], bool] | None = None,
    ) -> None:
        super().__init__(
            algebraic_model,
            provider,
            child_analyzer,
            config,
            show_progress=show_progress,
            step_callback=step_callback,
            cancel=cancel,
        )
        self.config: ThermalConfig = config
        self.solution = algebraic_model.create_zero_vector()
        self.previous_rhs = algebraic_model.create_zero_vector()
        self._current_rhs = algebraic_model.create_zero_vector()

    @property
    def beta(self) -> float:
        return self.config.beta

    @property
    def current_analysis_result(self) -> np.ndarray:
        return self.solution

    def create_state(self) -> AnalyzerState:
        return ThermalState(
            time=self.time,
            current_step=self.current_step,
            current_solution=self.solution.copy(),
            previous_rhs=self.previous_rhs.copy(),
        )

    def restore_state(self, state: AnalyzerState) -> None:
        state = check_state_type(state, ThermalState)
        restore_vector(self.solution, state.current_solution, "current_solution")
        restore_vector(self.previous_rhs, state.previous_rhs, "previous_rhs")
        self._current_step = state.current_step

    def build_matrices(self) -> None:
        """有効行列 C/Δt + β·K."""
        self.linear_system.matrix = self.provider.linear_combination_of_matrices_into_effective_matrix(
            TransientAnalysisCoefficients(zero=self.beta, first=1.0 / self.time_step, second=0.0)
        )

    def _products(self, x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        C = self.provider.get_matrix(DifferentiationOrder.FIRST)
        K = self.provider.get_matrix(DifferentiationOrder.ZERO)
        return (
            np.asarray(C @ x, dtype=float).reshape(-1),
            np.asarray(K @ x, dtype=float).reshape(-1),
        )

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray:
        """擬似内力 C·x/Δt + (β-1)·K·x."""
        Cx, Kx = self._products(current_solution)
        return Cx / self.time_step + (self.beta - 1.0) * Kx

    def _initialize_internal_vectors(self) -> None:
        self.solution = np.array(
            self.provider.get_vector_from_model_conditions(DifferentiationOrder.ZERO, 0.0), dtype=float
        )
        self.previous_rhs = np.array(self.provider.get_rhs(0.0), dtype=float)

    def _calculate_rhs(self) -> np.ndarray:
        beta = self.beta
        q = np.array(self.provider.get_rhs(self.time), dtype=float)
        Cx, Kx = self._products(self.solution)
        rhs = (1.0 - beta) * self.previous_rhs + beta * q + Cx / self.time_step - (1.0 - beta) * Kx
        self._current_rhs = q
        return rhs

    def _update_derivatives(self) -> None:
        self.solution = np.array(self._require_child().current_analysis_result, dtype=float)
        self.previous_rhs = self._current_rhs.copy()
