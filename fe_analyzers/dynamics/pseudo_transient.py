"""擬似過渡解析.

慣性・減衰を持たない準静的な荷重履歴 K·u = f(t_n) をステップ毎に解く。
時間は荷重パラメータとしてのみ使い、微分量は持たない。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from fe_analyzers.core.protocols import ChildAnalyzerProtocol, DifferentiationOrder, ProviderProtocol
from fe_analyzers.core.state import AnalyzerState, PseudoTransientState, check_state_type
from fe_analyzers.dynamics.base import StepCallback, TimeIntegrationConfig, TransientAnalyzerBase
from fe_analyzers.model import AlgebraicModel


@dataclass(frozen=True)
class PseudoTransientConfig(TimeIntegrationConfig):
    """擬似過渡解析の設定（時間刻みは荷重パラメータの刻み）."""


class PseudoTransientAnalyzer(TransientAnalyzerBase):
    """擬似過渡アナライザ（有効行列 = 0 階行列、右辺 = f(t_n)）."""

    algorithm_name = "Pseudo-transient analyzer"
    max_problem_order = DifferentiationOrder.SECOND

    def __init__(
        self,
        algebraic_model: AlgebraicModel,
        provider: ProviderProtocol,
        child_analyzer: ChildAnalyzerProtocol | None,
        config: PseudoTransientConfig,
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

    @property
    def current_analysis_result(self) -> np.ndarray:
        return self._require_child().current_analysis_result

    def create_state(self) -> AnalyzerState:
        return PseudoTransientState(time=self.time, current_step=self.current_step)

    def restore_state(self, state: AnalyzerState) -> None:
        state = check_state_type(state, PseudoTransientState)
        self._current_step = state.current_step

    def build_matrices(self) -> None:
        self.linear_system.matrix = self.provider.get_matrix(DifferentiationOrder.ZERO)

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray:
        return self.algebraic_model.create_zero_vector()

    def _initialize_internal_vectors(self) -> None:
        return None

    def _calculate_rhs(self) -> np.ndarray:
        return np.array(self.provider.get_rhs(self.time), dtype=float)

    def _update_derivatives(self) -> None:
        return None
