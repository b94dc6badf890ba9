"""Newmark-β 法の過渡応答テスト.

解析解との比較で時間積分の正確性を検証する。

テスト構成:
- TestNewmarkSDOF: 1自由度系の自由振動・エネルギー保存・初期加速度
- TestNewmarkChildren: 子アナライザ（線形 / 非線形）による結果の一致
- TestNewmarkRestart: スナップショットからの再開
- TestNewmarkConfig: 設定とプリセット
"""

from __future__ import annotations

import numpy as np
import pytest

from fe_analyzers.core.state import BDFState, NewmarkState
from fe_analyzers.dynamics import NewmarkConfig, NewmarkDynamicAnalyzer, TimeIntegrationConfig
from fe_analyzers.logs import ImplicitIntegrationAnalyzerLog, LinearAnalyzerLogFactory
from fe_analyzers.model import AlgebraicModel
from fe_analyzers.nonlinear import AnalysisCancelled, IncrementConfig, NonLinearAnalyzer
from fe_analyzers.providers import MatrixProvider
from fe_analyzers.static import LinearAnalyzer

# ====================================================================
# ヘルパー
# ====================================================================


def _sdof_model(
    m: float = 1.0,
    c: float = 0.0,
    k: float = 100.0,
    u0: float = 0.5,
    v0: float = 0.0,
    load=None,
) -> tuple[AlgebraicModel, MatrixProvider]:
    """1自由度系のモデルとプロバイダ."""
    model = AlgebraicModel(1)
    provider = MatrixProvider(
        model,
        np.array([[k]]),
        damping=np.array([[c]]),
        mass=np.array([[m]]),
        load=load,
        initial_conditions={0: np.array([u0]), 1: np.array([v0])},
    )
    return model, provider


def _newmark(model, provider, config, child=None, **kwargs) -> NewmarkDynamicAnalyzer:
    if child is None:
        child = LinearAnalyzer(model, provider, show_progress=False)
    return NewmarkDynamicAnalyzer(model, provider, child, config, show_progress=False, **kwargs)


def _run_history(analyzer) -> np.ndarray:
    """初期化して全ステップを進め、各ステップ後の解を返す."""
    analyzer.initialize()
    history = [analyzer.current_analysis_result.copy()]
    while analyzer.current_step < analyzer.steps:
        analyzer.solve_current_step()
        analyzer.advance_step()
        history.append(analyzer.current_analysis_result.copy())
    return np.array(history)


# ====================================================================
# 1自由度
# ====================================================================


class TestNewmarkSDOF:
    """1自由度系での Newmark-β 検証."""

    def test_free_vibration_undamped(self):
        """非減衰自由振動: u(t) = u0·cos(ωₙt)."""
        omega_n = 10.0
        T = 2.0 * np.pi / omega_n
        dt = T / 200.0
        model, provider = _sdof_model()
        cfg = NewmarkConfig(time_step=dt, total_time=T)
        history = _run_history(_newmark(model, provider, cfg))
        t = dt * np.arange(history.shape[0])
        np.testing.assert_allclose(history[:, 0], 0.5 * np.cos(omega_n * t), atol=2e-3)

    def test_energy_conserved(self):
        """平均加速度法は非減衰線形系で力学的エネルギーを保存する."""
        model, provider = _sdof_model(u0=0.5, v0=1.0)
        analyzer = _newmark(model, provider, NewmarkConfig(time_step=0.05, total_time=2.0))
        analyzer.initialize()
        e0 = 0.5 * analyzer.first_derivative[0] ** 2 + 0.5 * 100.0 * analyzer.solution[0] ** 2
        analyzer.solve()
        e1 = 0.5 * analyzer.first_derivative[0] ** 2 + 0.5 * 100.0 * analyzer.solution[0] ** 2
        assert e1 == pytest.approx(e0, rel=1e-10)

    def test_initial_acceleration(self):
        """M·a0 = f(0) - C·v0 - K·u0."""
        model, provider = _sdof_model(m=2.0, c=1.0, k=100.0, u0=0.5, v0=2.0, load=np.array([10.0]))
        analyzer = _newmark(model, provider, NewmarkConfig(time_step=0.01, total_time=0.1))
        analyzer.initialize()
        assert analyzer.second_derivative[0] == pytest.approx((10.0 - 2.0 - 50.0) / 2.0)
        np.testing.assert_allclose(analyzer.first_derivative, [2.0])

    def test_initial_acceleration_disabled(self):
        model, provider = _sdof_model()
        cfg = NewmarkConfig(time_step=0.01, total_time=0.1, calculate_initial_derivative_vectors=False)
        analyzer = _newmark(model, provider, cfg)
        analyzer.initialize()
        np.testing.assert_allclose(analyzer.second_derivative, [0.0])

    def test_step_load_damped(self):
        """減衰付きステップ荷重は静的変位 f/k に落ち着く."""
        model, provider = _sdof_model(c=4.0, u0=0.0, load=np.array([1.0]))
        analyzer = _newmark(model, provider, NewmarkConfig(time_step=0.01, total_time=10.0))
        analyzer.initialize()
        analyzer.solve()
        assert analyzer.solution[0] == pytest.approx(0.01, rel=1e-3)

    def test_statistics_and_logs(self):
        model, provider = _sdof_model()
        child = LinearAnalyzer(model, provider, show_progress=False)
        child.log_factory = LinearAnalyzerLogFactory(model, [0])
        steps_seen = []
        analyzer = _newmark(
            model,
            provider,
            NewmarkConfig(time_step=0.01, total_time=0.05),
            child=child,
            step_callback=lambda step, stats: steps_seen.append(step),
        )
        analyzer.result_storage = ImplicitIntegrationAnalyzerLog()
        analyzer.initialize()
        analyzer.solve()
        assert steps_seen == [0, 1, 2, 3, 4]
        assert len(analyzer.analysis_statistics) == 5
        assert all(s.converged for s in analyzer.analysis_statistics)
        assert analyzer.analysis_statistics[0].algorithm_name == "Newmark dynamic analyzer"
        assert len(analyzer.result_storage.logs) == 5

    def test_progress_output(self, capsys):
        model, provider = _sdof_model()
        child = LinearAnalyzer(model, provider, show_progress=False)
        analyzer = NewmarkDynamicAnalyzer(model, provider, child, NewmarkConfig(time_step=0.01, total_time=0.02))
        analyzer.initialize()
        analyzer.solve()
        out = capsys.readouterr().out
        assert "Step 1/2" in out
        assert "Step 2/2" in out

    def test_cancel(self):
        model, provider = _sdof_model()
        analyzer = _newmark(model, provider, NewmarkConfig(time_step=0.01, total_time=0.1), cancel=lambda: True)
        analyzer.initialize()
        with pytest.raises(AnalysisCancelled):
            analyzer.solve()


# ====================================================================
# 子アナライザ
# ====================================================================


class TestNewmarkChildren:
    """線形子と非線形子で同じ時刻歴になること."""

    def test_nonlinear_child_matches_linear(self):
        cfg = NewmarkConfig(time_step=0.02, total_time=0.5)
        model_a, provider_a = _sdof_model(c=0.5, load=lambda t: np.array([np.sin(5.0 * t)]))
        linear = _run_history(_newmark(model_a, provider_a, cfg))

        model_b, provider_b = _sdof_model(c=0.5, load=lambda t: np.array([np.sin(5.0 * t)]))
        child = NonLinearAnalyzer(
            model_b,
            provider_b,
            IncrementConfig(num_increments=1, stop_if_not_converged=True, residual_tolerance=1e-10),
            show_progress=False,
        )
        nonlinear = _run_history(_newmark(model_b, provider_b, cfg, child=child))
        np.testing.assert_allclose(nonlinear, linear, rtol=1e-8, atol=1e-12)

    def test_requires_child(self):
        model, provider = _sdof_model()
        analyzer = NewmarkDynamicAnalyzer(
            model, provider, None, NewmarkConfig(time_step=0.01, total_time=0.1), show_progress=False
        )
        with pytest.raises(RuntimeError, match="子アナライザ"):
            analyzer.initialize()


# ====================================================================
# 再開
# ====================================================================


class TestNewmarkRestart:
    """スナップショットからの再開."""

    def test_snapshot_restart_matches_straight_run(self):
        cfg = NewmarkConfig(time_step=0.01, total_time=0.1)
        load = lambda t: np.array([1.0 + t])  # noqa: E731

        model, provider = _sdof_model(c=0.3, load=load)
        straight = _newmark(model, provider, cfg)
        straight.initialize()
        for _ in range(6):
            straight.solve_current_step()
            straight.advance_step()

        model_1, provider_1 = _sdof_model(c=0.3, load=load)
        first = _newmark(model_1, provider_1, cfg)
        first.initialize()
        for _ in range(5):
            first.solve_current_step()
            first.advance_step()
        snapshot = first.create_state()
        assert isinstance(snapshot, NewmarkState)
        assert snapshot.current_step == 5

        model_2, provider_2 = _sdof_model(c=0.3, load=load)
        resumed = _newmark(model_2, provider_2, cfg)
        resumed.initialize()
        resumed.restore_state(snapshot)
        resumed.solve_current_step()
        resumed.advance_step()

        assert resumed.current_step == 6
        np.testing.assert_allclose(resumed.solution, straight.solution, rtol=1e-12)
        np.testing.assert_allclose(resumed.first_derivative, straight.first_derivative, rtol=1e-12)
        np.testing.assert_allclose(resumed.second_derivative, straight.second_derivative, rtol=1e-12)

    def test_restore_wrong_type(self):
        model, provider = _sdof_model()
        analyzer = _newmark(model, provider, NewmarkConfig(time_step=0.01, total_time=0.1))
        analyzer.initialize()
        wrong = BDFState(current_solution=np.zeros(1), previous_solutions=(np.zeros(1),), first_derivative=np.zeros(1))
        with pytest.raises(TypeError):
            analyzer.restore_state(wrong)

    def test_restore_wrong_length(self):
        model, provider = _sdof_model()
        analyzer = _newmark(model, provider, NewmarkConfig(time_step=0.01, total_time=0.1))
        analyzer.initialize()
        bad = NewmarkState(current_solution=np.zeros(2), first_derivative=np.zeros(1), second_derivative=np.zeros(1))
        with pytest.raises(ValueError, match="current_solution"):
            analyzer.restore_state(bad)


# ====================================================================
# 設定
# ====================================================================


class TestNewmarkConfig:
    """設定の検査とプリセット."""

    def test_steps(self):
        assert TimeIntegrationConfig(time_step=0.1, total_time=1.0).steps == 10
        assert TimeIntegrationConfig(time_step=0.3, total_time=1.0).steps == 3

    @pytest.mark.parametrize("dt, total", [(0.0, 1.0), (-0.1, 1.0), (0.1, 0.0)])
    def test_invalid_times(self, dt, total):
        with pytest.raises(ValueError):
            NewmarkConfig(time_step=dt, total_time=total)

    def test_constant_acceleration(self):
        cfg = NewmarkConfig.constant_acceleration(0.01, 1.0)
        assert (cfg.beta, cfg.gamma) == (0.25, 0.5)

    def test_linear_acceleration(self):
        cfg = NewmarkConfig.linear_acceleration(0.01, 1.0)
        assert cfg.beta == pytest.approx(1.0 / 6.0)
        assert cfg.allow_conditionally_stable

    def test_linear_acceleration_needs_flag(self):
        with pytest.raises(ValueError, match="beta"):
            NewmarkConfig(time_step=0.01, total_time=1.0, beta=1.0 / 6.0)

    def test_central_differences_preset_rejected(self):
        with pytest.raises(ValueError, match="CentralDifferencesDynamicAnalyzer"):
            NewmarkConfig.central_differences(0.01, 1.0)

    def test_frozen(self):
        cfg = NewmarkConfig(time_step=0.01, total_time=1.0)
        with pytest.raises(AttributeError):
            cfg.beta = 0.3  # type: ignore[misc]
