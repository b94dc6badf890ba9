"""分離反復（staggered）解析のテスト.

2 つの 1 自由度場を連成させる:
    2·ua - ub = fa
    2·ub - ua = 0
各場は相手の解を外力として受け取り、反復の合間に create_new_model で更新する。
fa = 1 の連成解は ua = 2/3, ub = 1/3。
"""

from __future__ import annotations

import numpy as np
import pytest

from fe_analyzers.dynamics import PseudoTransientAnalyzer, PseudoTransientConfig
from fe_analyzers.model import AlgebraicModel
from fe_analyzers.nonlinear import AnalysisCancelled
from fe_analyzers.providers import MatrixProvider
from fe_analyzers.staggered import StaggeredAnalyzer, StaggeredConfig, StepwiseStaggeredAnalyzer
from fe_analyzers.static import LinearAnalyzer, StaticAnalyzer

# ====================================================================
# ヘルパー
# ====================================================================


def _field(k: float, load) -> tuple[AlgebraicModel, MatrixProvider, LinearAnalyzer]:
    model = AlgebraicModel(1)
    provider = MatrixProvider(model, np.array([[k]]), load=load)
    return model, provider, LinearAnalyzer(model, provider, show_progress=False)


def _coupled_static(config: StaggeredConfig, **kwargs):
    coupling = {"ua": 0.0, "ub": 0.0}
    model_a, provider_a, child_a = _field(2.0, lambda t: np.array([1.0 + coupling["ub"]]))
    model_b, provider_b, child_b = _field(2.0, lambda t: np.array([coupling["ua"]]))
    parent_a = StaticAnalyzer(model_a, provider_a, child_a)
    parent_b = StaticAnalyzer(model_b, provider_b, child_b)

    def create_new_model(analyzers, linear_systems):
        coupling["ua"] = float(linear_systems[0].solution[0])
        coupling["ub"] = float(linear_systems[1].solution[0])
        for analyzer in analyzers:
            analyzer.initialize(False)

    staggered = StaggeredAnalyzer(
        [parent_a, parent_b],
        [model_a.linear_system, model_b.linear_system],
        create_new_model,
        config,
        show_progress=False,
        **kwargs,
    )
    return staggered, model_a, model_b


# ====================================================================
# 静的連成
# ====================================================================


class TestStaggeredAnalyzer:
    """solve() を丸ごと反復する分離反復."""

    def test_converges_to_coupled_solution(self):
        staggered, model_a, model_b = _coupled_static(StaggeredConfig(max_staggered_steps=200, tolerance=1e-12))
        staggered.initialize()
        staggered.solve()
        assert staggered.analysis_statistics.converged
        assert staggered.analysis_statistics.iterations > 1
        np.testing.assert_allclose(model_a.linear_system.solution, [2.0 / 3.0], rtol=1e-8)
        np.testing.assert_allclose(model_b.linear_system.solution, [1.0 / 3.0], rtol=1e-8)

    def test_nested_statistics(self):
        staggered, _, _ = _coupled_static(StaggeredConfig(max_staggered_steps=200, tolerance=1e-6))
        staggered.initialize()
        staggered.solve()
        nested = staggered.nested_analysis_statistics
        assert len(nested) == staggered.analysis_statistics.iterations
        assert all(len(per_round) == 2 for per_round in nested)
        assert nested[0][0][0].algorithm_name == "Linear analyzer"

    def test_not_converged_at_limit(self):
        staggered, _, _ = _coupled_static(StaggeredConfig(max_staggered_steps=2, tolerance=1e-12))
        staggered.initialize()
        staggered.solve()
        stats = staggered.analysis_statistics
        assert not stats.converged
        assert stats.iterations == 2
        assert stats.residual_norm_ratio > 1e-12

    def test_converged_on_last_allowed_round(self):
        """上限回数ちょうどで誤差が判定値を下回れば収束扱い."""
        model, provider, child = _field(4.0, np.array([2.0]))
        staggered = StaggeredAnalyzer(
            [StaticAnalyzer(model, provider, child)],
            [model.linear_system],
            lambda analyzers, systems: None,
            StaggeredConfig(max_staggered_steps=2, tolerance=1e-6),
            show_progress=False,
        )
        staggered.initialize()
        staggered.solve()
        stats = staggered.analysis_statistics
        assert stats.iterations == 2
        assert stats.residual_norm_ratio == 0.0
        assert stats.converged

    def test_current_solutions_hold_previous_round(self):
        staggered, model_a, _ = _coupled_static(StaggeredConfig(max_staggered_steps=2, tolerance=1e-14))
        staggered.initialize()
        staggered.solve()
        # 2 回目の開始時点 = 1 回目の解 ua = 1/2
        np.testing.assert_allclose(staggered.current_solutions[0], [0.5])
        np.testing.assert_allclose(model_a.linear_system.solution, [0.5])

    def test_progress_output(self, capsys):
        coupling = {"ub": 0.0}
        model_a, provider_a, child_a = _field(2.0, lambda t: np.array([1.0 + coupling["ub"]]))
        staggered = StaggeredAnalyzer(
            [StaticAnalyzer(model_a, provider_a, child_a)],
            [model_a.linear_system],
            lambda analyzers, systems: None,
            StaggeredConfig(max_staggered_steps=3, tolerance=1e-8),
        )
        staggered.initialize()
        staggered.solve()
        assert "Staggered step 0" in capsys.readouterr().out

    def test_cancel(self):
        staggered, _, _ = _coupled_static(StaggeredConfig(max_staggered_steps=10, tolerance=1e-12), cancel=lambda: True)
        staggered.initialize()
        with pytest.raises(AnalysisCancelled):
            staggered.solve()

    def test_current_analysis_result_unavailable(self):
        staggered, _, _ = _coupled_static(StaggeredConfig(max_staggered_steps=2, tolerance=1e-6))
        with pytest.raises(RuntimeError):
            staggered.current_analysis_result

    def test_length_mismatch(self):
        model, provider, child = _field(1.0, None)
        with pytest.raises(ValueError, match="数が一致しません"):
            StaggeredAnalyzer(
                [StaticAnalyzer(model, provider, child)],
                [],
                lambda analyzers, systems: None,
                StaggeredConfig(max_staggered_steps=1, tolerance=1e-8),
            )

    @pytest.mark.parametrize("steps, tol", [(0, 0.1), (1, -1.0), (1, 0.0)])
    def test_invalid_config(self, steps, tol):
        with pytest.raises(ValueError):
            StaggeredConfig(max_staggered_steps=steps, tolerance=tol)


# ====================================================================
# ステップ毎の分離反復
# ====================================================================


class TestStepwiseStaggeredAnalyzer:
    """時間ステップ毎に分離反復を行う."""

    def test_coupled_ramp(self):
        """fa = t: 各ステップで ua = 2t/3, ub = t/3."""
        coupling = {"ua": 0.0, "ub": 0.0}
        cfg = PseudoTransientConfig(time_step=1.0, total_time=3.0)
        model_a, provider_a, child_a = _field(2.0, lambda t: np.array([t + coupling["ub"]]))
        model_b, provider_b, child_b = _field(2.0, lambda t: np.array([coupling["ua"]]))
        analyzer_a = PseudoTransientAnalyzer(model_a, provider_a, child_a, cfg, show_progress=False)
        analyzer_b = PseudoTransientAnalyzer(model_b, provider_b, child_b, cfg, show_progress=False)

        def create_new_model(analyzers, linear_systems):
            coupling["ua"] = float(linear_systems[0].solution[0])
            coupling["ub"] = float(linear_systems[1].solution[0])

        staggered = StepwiseStaggeredAnalyzer(
            [analyzer_a, analyzer_b],
            [model_a.linear_system, model_b.linear_system],
            create_new_model,
            StaggeredConfig(max_staggered_steps=200, tolerance=1e-12),
            show_progress=False,
        )
        staggered.initialize()
        assert staggered.steps == 3
        staggered.solve()
        assert analyzer_a.current_step == 3
        np.testing.assert_allclose(model_a.linear_system.solution, [4.0 / 3.0], rtol=1e-8)
        np.testing.assert_allclose(model_b.linear_system.solution, [2.0 / 3.0], rtol=1e-8)

    def test_different_step_counts(self):
        """短い方のアナライザは終端で止まり、長い方だけが進む."""
        model_a, provider_a, child_a = _field(1.0, lambda t: np.array([t]))
        model_b, provider_b, child_b = _field(1.0, lambda t: np.array([2.0 * t]))
        analyzer_a = PseudoTransientAnalyzer(
            model_a, provider_a, child_a, PseudoTransientConfig(time_step=1.0, total_time=3.0), show_progress=False
        )
        analyzer_b = PseudoTransientAnalyzer(
            model_b, provider_b, child_b, PseudoTransientConfig(time_step=1.0, total_time=5.0), show_progress=False
        )
        staggered = StepwiseStaggeredAnalyzer(
            [analyzer_a, analyzer_b],
            [model_a.linear_system, model_b.linear_system],
            lambda analyzers, systems: None,
            StaggeredConfig(max_staggered_steps=5, tolerance=1e-12),
            show_progress=False,
        )
        staggered.initialize()
        assert staggered.steps == 5
        staggered.solve()
        assert analyzer_a.current_step == 3
        assert analyzer_b.current_step == 5
        np.testing.assert_allclose(model_a.linear_system.solution, [2.0])
        np.testing.assert_allclose(model_b.linear_system.solution, [8.0])

    def test_static_member_solved_every_round(self):
        """ステップを持たないアナライザは毎回 solve() される."""
        calls = []
        model_a, provider_a, child_a = _field(1.0, lambda t: np.array([t]))
        model_b, provider_b, child_b = _field(4.0, np.array([1.0]))
        stepwise = PseudoTransientAnalyzer(
            model_a, provider_a, child_a, PseudoTransientConfig(time_step=1.0, total_time=2.0), show_progress=False
        )
        static = StaticAnalyzer(model_b, provider_b, child_b)
        original_solve = static.solve

        def counting_solve():
            calls.append(1)
            original_solve()

        static.solve = counting_solve
        staggered = StepwiseStaggeredAnalyzer(
            [stepwise, static],
            [model_a.linear_system, model_b.linear_system],
            lambda analyzers, systems: None,
            StaggeredConfig(max_staggered_steps=1, tolerance=1e-8),
            show_progress=False,
        )
        staggered.initialize()
        staggered.solve()
        assert len(calls) == 2
        np.testing.assert_allclose(model_b.linear_system.solution, [0.25])
