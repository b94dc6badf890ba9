"""一般化α法 (Chung & Hulbert, 1993) による陰的時間積分.

運動方程式: M·ä + C·u̇ + K·u = f(t)

有効行列:  K_eff = K + a0·M + a1·C
右辺:      f_eff = f(t_n) + M·(a0·u + a2·v + a3·a) + C·(a1·u + a4·v + a5·a)
更新:      a_{n+1} = a0N·(u_{n+1} - u_n) - a2N·v_n - a3N·a_n
           v_{n+1} = v_n + a6N·a_n + a7N·a_{n+1}

αm = αf = 0 で Newmark-β 法に一致する。
初期加速度は M·a_0 = f(0) - C·v_0 - K·u_0 を解いて求める（初期条件評価フェーズ）。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from fe_analyzers.coefficients import (
    generalized_alpha_coefficients,
    spectral_radius_parameters,
    validate_newmark_parameters,
)
from fe_analyzers.core.protocols import (
    ChildAnalyzerProtocol,
    DifferentiationOrder,
    ProviderProtocol,
    TransientAnalysisPhase,
)
from fe_analyzers.core.results import GeneralizedAlphaCoefficients, TransientAnalysisCoefficients
from fe_analyzers.core.state import (
    AnalyzerState,
    GeneralizedAlphaState,
    check_state_type,
    restore_vector,
)
from fe_analyzers.dynamics.base import StepCallback, TimeIntegrationConfig, TransientAnalyzerBase
from fe_analyzers.model import AlgebraicModel


@dataclass(frozen=True)
class GeneralizedAlphaConfig(TimeIntegrationConfig):
    """一般化α法の設定.

    Attributes:
        beta: Newmark β
        gamma: Newmark γ
        alpha_m: 慣性項の重み αm
        alpha_f: 内力・減衰項の重み αf
        allow_conditionally_stable: 条件付き安定なパラメータを許すか
        check_stability: β, γ の安定性条件を検査するか（from_spectral_radius では省略）
        calculate_initial_derivative_vectors: ステップ 0 で初期加速度を解くか
    """

    beta: float = 0.25
    gamma: float = 0.5
    alpha_m: float = 0.0
    alpha_f: float = 0.0
    allow_conditionally_stable: bool = False
    check_stability: bool = True
    calculate_initial_derivative_vectors: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.beta > 0.0:
            raise ValueError(f"beta は正値: {self.beta}")
        if not self.alpha_m < 1.0:
            raise ValueError(f"alpha_m は 1 未満: {self.alpha_m}")
        if not self.alpha_f < 1.0:
            raise ValueError(f"alpha_f は 1 未満: {self.alpha_f}")
        if self.check_stability:
            validate_newmark_parameters(self.beta, self.gamma, self.allow_conditionally_stable)

    @classmethod
    def from_spectral_radius(
        cls,
        time_step: float,
        total_time: float,
        spectral_radius: float,
        *,
        calculate_initial_derivative_vectors: bool = True,
    ) -> GeneralizedAlphaConfig:
        """高周波スペクトル半径 ρ∞ から設定を作る（ρ∞ = 1 で数値減衰なし）."""
        alpha_m, alpha_f, beta, gamma = spectral_radius_parameters(spectral_radius)
        return cls(
            time_step=time_step,
            total_time=total_time,
            beta=beta,
            gamma=gamma,
            alpha_m=alpha_m,
            alpha_f=alpha_f,
            check_stability=False,
            calculate_initial_derivative_vectors=calculate_initial_derivative_vectors,
        )


class GeneralizedAlphaDynamicAnalyzer(TransientAnalyzerBase):
    """一般化α法の時間積分アナライザ.

    Args:
        algebraic_model: 代数モデル
        provider: 物理プロバイダ（問題階数 ≤ 2）
        child_analyzer: 子アナライザ
        config: GeneralizedAlphaConfig
        show_progress, step_callback, cancel: TransientAnalyzerBase と同じ
    """

    algorithm_name = "Generalized alpha dynamic analyzer"
    max_problem_order = DifferentiationOrder.SECOND

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
        config: GeneralizedAlphaConfig,
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
        self.config: GeneralizedAlphaConfig = config
        self.coefficients = self._coefficients()
        self.solution = algebraic_model.create_zero_vector()
        self.previous_solution = algebraic_model.create_zero_vector()
        self.first_derivative = algebraic_model.create_zero_vector()
        self.second_derivative = algebraic_model.create_zero_vector()

    def _coefficients(self) -> GeneralizedAlphaCoefficients:
        cfg = self.config
        return generalized_alpha_coefficients(cfg.beta, cfg.gamma, cfg.alpha_m, cfg.alpha_f, cfg.time_step)

    @property
    def current_analysis_result(self) -> np.ndarray:
        return self.solution

    # ----------------------------------------------------------------
    # 状態
    # ----------------------------------------------------------------

    def create_state(self) -> AnalyzerState:
        return GeneralizedAlphaState(
            time=self.time,
            current_step=self.current_step,
            current_solution=self.solution.copy(),
            previous_solution=self.previous_solution.copy(),
            first_derivative=self.first_derivative.copy(),
            second_derivative=self.second_derivative.copy(),
        )

    def restore_state(self, state: AnalyzerState) -> None:
        state = check_state_type(state, GeneralizedAlphaState)
        restore_vector(self.solution, state.current_solution, "current_solution")
        restore_vector(self.previous_solution, state.previous_solution, "previous_solution")
        restore_vector(self.first_derivative, state.first_derivative, "first_derivative")
        restore_vector(self.second_derivative, state.second_derivative, "second_derivative")
        self._current_step = state.current_step

    # ----------------------------------------------------------------
    # 行列・右辺
    # ----------------------------------------------------------------

    def build_matrices(self) -> None:
        """有効行列 K + a0·M + a1·C を線形系へ設定する."""
        c = self.coefficients
        self.linear_system.matrix = self.provider.linear_combination_of_matrices_into_effective_matrix(
            TransientAnalysisCoefficients(zero=1.0, first=c.a1, second=c.a0)
        )

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray:
        """慣性・減衰の擬似内力 a0·M·x + a1·C·x（初期条件評価中はゼロ）."""
        if self.phase == TransientAnalysisPhase.INITIAL_CONDITION_EVALUATION:
            return self.algebraic_model.create_zero_vector()
        c = self.coefficients
        M = self.provider.get_matrix(DifferentiationOrder.SECOND)
        C = self.provider.get_matrix(DifferentiationOrder.FIRST)
        return c.a0 * np.asarray(M @ current_solution).reshape(-1) + c.a1 * np.asarray(
            C @ current_solution
        ).reshape(-1)

    def _initialize_internal_vectors(self) -> None:
        self.solution = self._model_condition(DifferentiationOrder.ZERO, 0.0)
        self.previous_solution = self.algebraic_model.create_zero_vector()
        self.first_derivative = self._model_condition(DifferentiationOrder.FIRST, 0.0)
        self.second_derivative = self._model_condition(DifferentiationOrder.SECOND, 0.0)
        self._solve_for_initial_conditions()

    def _model_condition(self, order: DifferentiationOrder, t: float) -> np.ndarray:
        if order > self.provider.problem_order:
            return self.algebraic_model.create_zero_vector()
        return np.array(self.provider.get_vector_from_model_conditions(order, t), dtype=float)

    def _solve_for_initial_conditions(self) -> None:
        """最高階の微分量を初期条件から解く: A_p·x = f(0) - Σ_{d<p} A_d·x_d(0)."""
        order = self.provider.problem_order
        if (
            not self.config.calculate_initial_derivative_vectors
            or self.current_step != 0
            or order == DifferentiationOrder.ZERO
        ):
            return
        rhs = np.array(self.provider.get_rhs(0.0), dtype=float)
        for d in range(int(order)):
            lower = DifferentiationOrder(d)
            x = self.provider.get_vector_from_model_conditions(lower, 0.0)
            if np.linalg.norm(x) != 0.0:
                rhs -= np.asarray(self.provider.get_matrix(lower) @ x).reshape(-1)

        result = self._solve_initial_condition_system(order, rhs)
        if order == DifferentiationOrder.SECOND:
            self.second_derivative = result
        else:
            self.first_derivative = result

    def _step_derivatives(self, t: float) -> tuple[np.ndarray, np.ndarray]:
        """規定された速度・加速度（モデル条件）を加えた v, a. t = 0 の値は初期化で反映済み."""
        if t == 0.0:
            return self.first_derivative, self.second_derivative
        return (
            self.first_derivative + self._model_condition(DifferentiationOrder.FIRST, t),
            self.second_derivative + self._model_condition(DifferentiationOrder.SECOND, t),
        )

    def _calculate_rhs(self) -> np.ndarray:
        t = self.time
        v, a = self._step_derivatives(t)
        f = np.array(self.provider.get_rhs(t), dtype=float)
        c = self.coefficients
        u = self.solution
        order = self.provider.problem_order
        if order == DifferentiationOrder.SECOND:
            M = self.provider.get_matrix(DifferentiationOrder.SECOND)
            f += np.asarray(M @ (c.a0 * u + c.a2 * v + c.a3 * a)).reshape(-1)
        if order >= DifferentiationOrder.FIRST:
            C = self.provider.get_matrix(DifferentiationOrder.FIRST)
            f += np.asarray(C @ (c.a1 * u + c.a4 * v + c.a5 * a)).reshape(-1)
        return f

    def _update_derivatives(self) -> None:
        c = self.coefficients
        v_old, a_old = self._step_derivatives(self.time)
        self.previous_solution = self.solution.copy()
        self.solution = np.array(self._require_child().current_analysis_result, dtype=float)
        a_new = c.a0N * (self.solution - self.previous_solution) - c.a2N * v_old - c.a3N * a_old
        self.first_derivative = v_old + c.a6N * a_old + c.a7N * a_new
        self.second_derivative = a_new
