"""中心差分法による陽的時間積分.

    u̇_n ≈ (u_{n+1} - u_{n-1}) / (2Δt)
    ü_n ≈ (u_{n+1} - 2u_n + u_{n-1}) / Δt²

有効行列:  M/Δt² + C/(2Δt)（剛性を含まないため一度だけ組む）
右辺:      f(t_n) - f_int(u_n) + (2/Δt²)·M·u_n - (M/Δt² - C/(2Δt))·u_{n-1}

条件付き安定（Δt < 2/ω_max）。安定性の検査は行わない。
起動値 u_{-1} = u_0 - Δt·v_0 + (Δt²/2)·a_0、a_0 は M·a_0 = f(0) - C·v_0 - f_int(u_0) から求める。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from fe_analyzers.coefficients import central_differences_coefficients
from fe_analyzers.core.protocols import (
    ChildAnalyzerProtocol,
    DifferentiationOrder,
    ProviderProtocol,
    TransientAnalysisPhase,
)
from fe_analyzers.core.results import TransientAnalysisCoefficients
from fe_analyzers.core.state import AnalyzerState, CentralDifferencesState, check_state_type, restore_vector
from fe_analyzers.dynamics.base import StepCallback, TimeIntegrationConfig, TransientAnalyzerBase
from fe_analyzers.model import AlgebraicModel


@dataclass(frozen=True)
class CentralDifferencesConfig(TimeIntegrationConfig):
    """中心差分法の設定（時間刻みと解析時間のみ）."""


class CentralDifferencesDynamicAnalyzer(TransientAnalyzerBase):
    """中心差分法の時間積分アナライザ.

    内力は provider.calculate_response_integral_vector(u_n) で評価するため、
    非線形な内力にもそのまま使える。子アナライザは質量・減衰のみの有効行列を解く。
    """

    algorithm_name = "Central differences dynamic analyzer"
    max_problem_order = DifferentiationOrder.SECOND

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
        config: CentralDifferencesConfig,
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
        self.coefficients = central_differences_coefficients(config.time_step)
        self.solution = algebraic_model.create_zero_vector()
        self.previous_solution = algebraic_model.create_zero_vector()
        self.first_derivative = algebraic_model.create_zero_vector()
        self.second_derivative = algebraic_model.create_zero_vector()

    @property
    def current_analysis_result(self) -> np.ndarray:
        return self.solution

    def create_state(self) -> AnalyzerState:
        return CentralDifferencesState(
            time=self.time,
            current_step=self.current_step,
            current_solution=self.solution.copy(),
            previous_solution=self.previous_solution.copy(),
            first_derivative=self.first_derivative.copy(),
            second_derivative=self.second_derivative.copy(),
        )

    def restore_state(self, state: AnalyzerState) -> None:
        state = check_state_type(state, CentralDifferencesState)
        restore_vector(self.solution, state.current_solution, "current_solution")
        restore_vector(self.previous_solution, state.previous_solution, "previous_solution")
        restore_vector(self.first_derivative, state.first_derivative, "first_derivative")
        restore_vector(self.second_derivative, state.second_derivative, "second_derivative")
        self._current_step = state.current_step

    # ----------------------------------------------------------------
    # 行列・右辺
    # ----------------------------------------------------------------

    def _effective_coefficients(self) -> TransientAnalysisCoefficients:
        c = self.coefficients
        return TransientAnalysisCoefficients(zero=0.0, first=c.a1, second=c.a0)

    def build_matrices(self) -> None:
        """有効行列 M/Δt² + C/(2Δt)."""
        self.linear_system.matrix = self.provider.linear_combination_of_matrices_into_effective_matrix(
            self._effective_coefficients()
        )

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray:
        """擬似内力 K_eff·x - f_int(x)（子の残差が K_eff·x = 右辺 になるように）."""
        if self.phase == TransientAnalysisPhase.INITIAL_CONDITION_EVALUATION:
            return self.algebraic_model.create_zero_vector()
        K_eff = self.provider.linear_combination_of_matrices_into_effective_matrix(self._effective_coefficients())
        return np.asarray(K_eff @ current_solution, dtype=float).reshape(-1) - np.asarray(
            self.provider.calculate_response_integral_vector(current_solution), dtype=float
        ).reshape(-1)

    def _initialize_internal_vectors(self) -> None:
        c = self.coefficients
        dt = self.time_step
        u0 = np.array(self.provider.get_vector_from_model_conditions(DifferentiationOrder.ZERO, 0.0), dtype=float)
        v0 = np.array(self.provider.get_vector_from_model_conditions(DifferentiationOrder.FIRST, 0.0), dtype=float)
        a0 = self.algebraic_model.create_zero_vector()
        if self.current_step == 0 and self.provider.problem_order == DifferentiationOrder.SECOND:
            rhs = np.array(self.provider.get_rhs(0.0), dtype=float)
            rhs -= np.asarray(self.provider.calculate_response_integral_vector(u0), dtype=float).reshape(-1)
            C = self.provider.get_matrix(DifferentiationOrder.FIRST)
            rhs -= np.asarray(C @ v0, dtype=float).reshape(-1)
            a0 = self._solve_initial_condition_system(DifferentiationOrder.SECOND, rhs)

        self.solution = u0
        self.first_derivative = v0
        self.second_derivative = a0
        self.previous_solution = u0 - dt * v0 + c.a3 * a0

    def _calculate_rhs(self) -> np.ndarray:
        c = self.coefficients
        u, u_prev = self.solution, self.previous_solution
        M = self.provider.get_matrix(DifferentiationOrder.SECOND)
        C = self.provider.get_matrix(DifferentiationOrder.FIRST)
        f = np.array(self.provider.get_rhs(self.time), dtype=float)
        f -= np.asarray(self.provider.calculate_response_integral_vector(u), dtype=float).reshape(-1)
        f += c.a2 * np.asarray(M @ u, dtype=float).reshape(-1)
        f -= np.asarray(M @ (c.a0 * u_prev) - C @ (c.a1 * u_prev), dtype=float).reshape(-1)
        return f

    def _update_derivatives(self) -> None:
        c = self.coefficients
        u_new = np.array(self._require_child().current_analysis_result, dtype=float)
        self.first_derivative = c.a1 * (u_new - self.previous_solution)
        self.second_derivative = c.a0 * (u_new - 2.0 * self.solution + self.previous_solution)
        self.previous_solution = self.solution.copy()
        self.solution = u_new
