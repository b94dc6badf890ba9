"""後退差分 (BDF) 法による 1 階系の陰的時間積分.

対象: C·u̇ + K·u = f(t)（熱伝導・拡散など）

k 次 BDF:
    u̇_{n+1} ≈ (c0·u_{n+1} - Σ_{i=1..k} r_i·u_{n+1-i}) / Δt
有効行列:  K_eff = K + (c0/Δt)·C
右辺:      f_eff = f(t_n) + (1/Δt)·C·(r_1·u_n + r_2·u_{n-1} + ...)

起動時は履歴が足りないため実効次数を min(step+1, k) とし、
実効次数が変わったときだけ有効行列を組み直す。

1 階微分の規定値（get_vector_from_model_conditions の FIRST）は右辺に加えない。
未知数は u のみで、u̇ は上の差分式から事後に求めるため、規定した速度は
初期の first_derivative にしか使われない。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from fe_analyzers.coefficients import bdf_coefficients, bdf_effective_order, validate_bdf_order
from fe_analyzers.core.protocols import ChildAnalyzerProtocol, DifferentiationOrder, ProviderProtocol
from fe_analyzers.core.results import BDFCoefficients, TransientAnalysisCoefficients
from fe_analyzers.core.state import AnalyzerState, BDFState, check_state_type, restore_vector
from fe_analyzers.dynamics.base import StepCallback, TimeIntegrationConfig, TransientAnalyzerBase
from fe_analyzers.model import AlgebraicModel


@dataclass(frozen=True)
class BDFConfig(TimeIntegrationConfig):
    """BDF 法の設定.

    Attributes:
        order: BDF 次数 k ∈ [1, 5]
    """

    order: int = 2

    def __post_init__(self) -> None:
        super().__post_init__()
        validate_bdf_order(self.order)


class BDFDynamicAnalyzer(TransientAnalyzerBase):
    """k 次 BDF の時間積分アナライザ（問題階数 ≤ 1）.

    Attributes:
        solution: u_n
        previous_solutions: [u_{n-1}, u_{n-2}, ...]（長さ k）
        first_derivative: 直近ステップの u̇ 推定値
    """

    algorithm_name = "BDF dynamic analyzer"
    max_problem_order = DifferentiationOrder.FIRST

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
        config: BDFConfig,
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
        self.config: BDFConfig = config
        self.solution = algebraic_model.create_zero_vector()
        self.previous_solutions = [algebraic_model.create_zero_vector() for _ in range(config.order)]
        self.first_derivative = algebraic_model.create_zero_vector()
        self._built_order = 0

    @property
    def order(self) -> int:
        return self.config.order

    @property
    def effective_order(self) -> int:
        """現在ステップで使う次数 min(step+1, k)."""
        return bdf_effective_order(self.current_step, self.config.order)

    @property
    def current_analysis_result(self) -> np.ndarray:
        return self.solution

    def _coefficients(self) -> BDFCoefficients:
        return bdf_coefficients(self.effective_order)

    # ----------------------------------------------------------------
    # 状態
    # ----------------------------------------------------------------

    def create_state(self) -> AnalyzerState:
        return BDFState(
            time=self.time,
            current_step=self.current_step,
            current_solution=self.solution.copy(),
            previous_solutions=tuple(p.copy() for p in self.previous_solutions),
            first_derivative=self.first_derivative.copy(),
        )

    def restore_state(self, state: AnalyzerState) -> None:
        state = check_state_type(state, BDFState)
        if len(state.previous_solutions) != len(self.previous_solutions):
            raise ValueError(
                f"BDF 履歴数が一致しません: {len(state.previous_solutions)} != {len(self.previous_solutions)}"
            )
        restore_vector(self.solution, state.current_solution, "current_solution")
        for i, (target, source) in enumerate(zip(self.previous_solutions, state.previous_solutions)):
            restore_vector(target, source, f"previous_solutions[{i}]")
        restore_vector(self.first_derivative, state.first_derivative, "first_derivative")
        self._current_step = state.current_step

    # ----------------------------------------------------------------
    # 行列・右辺
    # ----------------------------------------------------------------

    def build_matrices(self) -> None:
        """有効行列 K + (c0/Δt)·C を実効次数で組む."""
        c = self._coefficients()
        self.linear_system.matrix = self.provider.linear_combination_of_matrices_into_effective_matrix(
            TransientAnalysisCoefficients(zero=1.0, first=c.numerator / self.time_step, second=0.0)
        )
        self._built_order = c.order

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray:
        """擬似内力 (c0/Δt)·C·x."""
        c = self._coefficients()
        C = self.provider.get_matrix(DifferentiationOrder.FIRST)
        return c.numerator / self.time_step * np.asarray(C @ current_solution, dtype=float).reshape(-1)

    def _initialize_internal_vectors(self) -> None:
        self.solution = np.array(
            self.provider.get_vector_from_model_conditions(DifferentiationOrder.ZERO, 0.0), dtype=float
        )
        self.previous_solutions = [self.solution.copy()] + [
            self.algebraic_model.create_zero_vector() for _ in range(self.config.order - 1)
        ]
        self.first_derivative = np.array(
            self.provider.get_vector_from_model_conditions(DifferentiationOrder.FIRST, 0.0), dtype=float
        )

    def _history(self, factors: tuple[float, ...], current: np.ndarray) -> np.ndarray:
        """Σ factors[i]·(current, u_{n-1}, u_{n-2}, ...)[i]."""
        acc = factors[0] * current
        for i in range(1, len(factors)):
            acc = acc + factors[i] * self.previous_solutions[i - 1]
        return acc

    def _calculate_rhs(self) -> np.ndarray:
        c = self._coefficients()
        if c.order != self._built_order:
            self.build_matrices()
        f = np.array(self.provider.get_rhs(self.time), dtype=float)
        if self.provider.problem_order >= DifferentiationOrder.FIRST:
            C = self.provider.get_matrix(DifferentiationOrder.FIRST)
            history = self._history(c.rhs_factors, self.solution)
            f += np.asarray(C @ history, dtype=float).reshape(-1) / self.time_step
        return f

    def _update_derivatives(self) -> None:
        c = self._coefficients()
        u_new = np.array(self._require_child().current_analysis_result, dtype=float)
        # derivative_factors = (d0: u_{n+1}, d1: u_n, d2: u_{n-1}, ...)
        d = c.derivative_factors
        self.first_derivative = (d[0] * u_new + self._history(d[1:], self.solution)) / self.time_step

        for j in range(min(self.current_step, self.config.order - 1), 0, -1):
            self.previous_solutions[j] = self.previous_solutions[j - 1].copy()
        self.previous_solutions[0] = self.solution.copy()
        self.solution = u_new
