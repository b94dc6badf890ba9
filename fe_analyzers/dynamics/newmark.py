"""Newmark-β 法による陰的時間積分.

Newmark 近似:
    u_{n+1} = u_n + Δt·v_n + Δt²·[(1/2 - β)·a_n + β·a_{n+1}]
    v_{n+1} = v_n + Δt·[(1 - γ)·a_n + γ·a_{n+1}]

一般化α法の αm = αf = 0 の場合として実装する（有効行列・右辺・更新式は共通）。

代表的なパラメータ:
  - 平均加速度法（台形則）: β = 1/4, γ = 1/2（無条件安定、デフォルト）
  - 線形加速度法:           β = 1/6, γ = 1/2（条件付き安定）
  - 中心差分:               β = 0 は陰解法として扱えないため
                            CentralDifferencesDynamicAnalyzer を使う
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fe_analyzers.coefficients import newmark_coefficients, validate_newmark_parameters
from fe_analyzers.core.protocols import ChildAnalyzerProtocol, DifferentiationOrder, ProviderProtocol
from fe_analyzers.core.results import GeneralizedAlphaCoefficients
from fe_analyzers.core.state import AnalyzerState, NewmarkState, check_state_type, restore_vector
from fe_analyzers.dynamics.base import StepCallback, TimeIntegrationConfig
from fe_analyzers.dynamics.generalized_alpha import GeneralizedAlphaDynamicAnalyzer
from fe_analyzers.model import AlgebraicModel


@dataclass(frozen=True)
class NewmarkConfig(TimeIntegrationConfig):
    """Newmark-β 法の設定.

    Attributes:
        beta: Newmark β（> 0）
        gamma: Newmark γ
        allow_conditionally_stable: 条件付き安定なパラメータを許すか
        check_stability: 安定性条件 β ≥ (1/2 + γ)²/4 を検査するか（線形加速度法では省略）
        calculate_initial_derivative_vectors: ステップ 0 で M·a_0 = f(0) - C·v_0 - K·u_0 を解くか
    """

    beta: float = 0.25
    gamma: float = 0.5
    allow_conditionally_stable: bool = False
    check_stability: bool = True
    calculate_initial_derivative_vectors: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.beta > 0.0:
            raise ValueError(
                f"beta は正値（β=0 の中心差分は CentralDifferencesDynamicAnalyzer を使用）: {self.beta}"
            )
        if self.check_stability:
            validate_newmark_parameters(self.beta, self.gamma, self.allow_conditionally_stable)

    @classmethod
    def constant_acceleration(cls, time_step: float, total_time: float) -> NewmarkConfig:
        """平均加速度法 β = 1/4, γ = 1/2."""
        return cls(time_step=time_step, total_time=total_time, beta=0.25, gamma=0.5)

    @classmethod
    def linear_acceleration(cls, time_step: float, total_time: float) -> NewmarkConfig:
        """線形加速度法 β = 1/6, γ = 1/2（条件付き安定）."""
        return cls(
            time_step=time_step,
            total_time=total_time,
            beta=1.0 / 6.0,
            gamma=0.5,
            allow_conditionally_stable=True,
            check_stability=False,
        )

    @classmethod
    def central_differences(cls, time_step: float, total_time: float) -> NewmarkConfig:
        """β = 0, γ = 1/2. 陰解法では扱えないため常に ValueError."""
        return cls(time_step=time_step, total_time=total_time, beta=0.0, gamma=0.5)


class NewmarkDynamicAnalyzer(GeneralizedAlphaDynamicAnalyzer):
    """Newmark-β 法の時間積分アナライザ.

    状態スナップショットは NewmarkState (u, v, a)。
    """

    algorithm_name = "Newmark dynamic analyzer"
    max_problem_order = DifferentiationOrder.SECOND

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
        config: NewmarkConfig,
        *,
        show_progress: bool = True,
        step_callback: StepCallback | None = None,
        cancel: Callable[[], bool] | None = None,
    ) -> None:
        super().__init__(
            algebraic_model,
            provider,
            child_analyzer,
            config,  # type: ignore[arg-type]
            show_progress=show_progress,
            step_callback=step_callback,
            cancel=cancel,
        )

    def _coefficients(self) -> GeneralizedAlphaCoefficients:
        cfg = self.config
        c = newmark_coefficients(cfg.beta, cfg.gamma, cfg.time_step)
        return GeneralizedAlphaCoefficients(
            a0N=c.a0,
            a0=c.a0,
            a1=c.a1,
            a2N=c.a2,
            a2=c.a2,
            a3N=c.a3,
            a3=c.a3,
            a4=c.a4,
            a5=c.a5,
            a6N=c.a6,
            a7N=c.a7,
        )

    def create_state(self) -> AnalyzerState:
        return NewmarkState(
            time=self.time,
            current_step=self.current_step,
            current_solution=self.solution.copy(),
            first_derivative=self.first_derivative.copy(),
            second_derivative=self.second_derivative.copy(),
        )

    def restore_state(self, state: AnalyzerState) -> None:
        state = check_state_type(state, NewmarkState)
        restore_vector(self.solution, state.current_solution, "current_solution")
        restore_vector(self.first_derivative, state.first_derivative, "first_derivative")
        restore_vector(self.second_derivative, state.second_derivative, "second_derivative")
        self._current_step = state.current_step
