"""BDF 法のテスト.

C·u̇ + K·u = 0, u(0) = 1 の解析解 exp(-K·t/C) と比較する。
"""

from __future__ import annotations

import numpy as np
import pytest

from fe_analyzers.core.state import BDFState
from fe_analyzers.dynamics import BDFConfig, BDFDynamicAnalyzer
from fe_analyzers.model import AlgebraicModel
from fe_analyzers.nonlinear import IncrementConfig, NonLinearAnalyzer
from fe_analyzers.providers import MatrixProvider
from fe_analyzers.static import LinearAnalyzer


def _decay_model(c: float = 1.0, k: float = 1.0, load=None) -> tuple[AlgebraicModel, MatrixProvider]:
    model = AlgebraicModel(1)
    provider = MatrixProvider(
        model,
        np.array([[k]]),
        damping=np.array([[c]]),
        load=load,
        initial_conditions={0: np.array([1.0])},
    )
    return model, provider


def _bdf(model, provider, config, child=None) -> BDFDynamicAnalyzer:
    if child is None:
        child = LinearAnalyzer(model, provider, show_progress=False)
    return BDFDynamicAnalyzer(model, provider, child, config, show_progress=False)


def _step(analyzer, n: int) -> None:
    for _ in range(n):
        analyzer.solve_current_step()
        analyzer.advance_step()


class TestBDFAccuracy:
    """減衰問題の精度."""

    def test_bdf1_is_backward_euler(self):
        """BDF1: u_{n+1} = u_n / (1 + Δt)."""
        dt = 0.1
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=dt, total_time=1.0, order=1))
        analyzer.initialize()
        for n in range(1, 6):
            _step(analyzer, 1)
            assert analyzer.solution[0] == pytest.approx((1.0 / (1.0 + dt)) ** n, rel=1e-12)

    def test_bdf1_first_derivative(self):
        dt = 0.1
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=dt, total_time=1.0, order=1))
        analyzer.initialize()
        _step(analyzer, 1)
        u1 = 1.0 / (1.0 + dt)
        assert analyzer.first_derivative[0] == pytest.approx((u1 - 1.0) / dt, rel=1e-12)

    def test_bdf2_second_order(self):
        """BDF2 の誤差は Δt を半分にすると約 1/4 になる."""
        errors = []
        for dt in (0.02, 0.01):
            model, provider = _decay_model()
            analyzer = _bdf(model, provider, BDFConfig(time_step=dt, total_time=1.0, order=2))
            analyzer.initialize()
            analyzer.solve()
            errors.append(abs(analyzer.solution[0] - np.exp(-1.0)))
        assert errors[1] < 1e-3
        assert errors[0] / errors[1] > 3.0

    @pytest.mark.parametrize("order", [3, 4, 5])
    def test_higher_orders(self, order):
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=0.01, total_time=1.0, order=order))
        analyzer.initialize()
        analyzer.solve()
        assert analyzer.solution[0] == pytest.approx(np.exp(-1.0), abs=1e-3)

    def test_constant_source_steady_state(self):
        """C·u̇ + K·u = f → u = f/K."""
        model, provider = _decay_model(k=2.0, load=np.array([1.0]))
        analyzer = _bdf(model, provider, BDFConfig(time_step=0.1, total_time=20.0, order=2))
        analyzer.initialize()
        analyzer.solve()
        assert analyzer.solution[0] == pytest.approx(0.5, rel=1e-6)

    def test_nonlinear_child_matches_linear(self):
        cfg = BDFConfig(time_step=0.05, total_time=0.5, order=3)
        model_a, provider_a = _decay_model(load=lambda t: np.array([t]))
        linear = _bdf(model_a, provider_a, cfg)
        linear.initialize()
        linear.solve()

        model_b, provider_b = _decay_model(load=lambda t: np.array([t]))
        child = NonLinearAnalyzer(
            model_b,
            provider_b,
            IncrementConfig(num_increments=1, stop_if_not_converged=True, residual_tolerance=1e-10),
            show_progress=False,
        )
        nonlinear = _bdf(model_b, provider_b, cfg, child=child)
        nonlinear.initialize()
        nonlinear.solve()
        np.testing.assert_allclose(nonlinear.solution, linear.solution, rtol=1e-8)


class TestBDFStartup:
    """起動時の次数の立ち上げ."""

    def test_effective_order_ramp(self):
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=0.1, total_time=1.0, order=3))
        analyzer.initialize()
        orders = []
        for _ in range(5):
            orders.append(analyzer.effective_order)
            _step(analyzer, 1)
        assert orders == [1, 2, 3, 3, 3]

    def test_prescribed_rate_not_added_to_rhs(self):
        """1 階微分の規定値は初期 first_derivative にのみ入り、解には影響しない."""
        dt = 0.1
        model_a, provider_a = _decay_model()
        plain = _bdf(model_a, provider_a, BDFConfig(time_step=dt, total_time=1.0, order=2))
        plain.initialize()
        _step(plain, 3)

        model_b = AlgebraicModel(1)
        provider_b = MatrixProvider(
            model_b,
            np.array([[1.0]]),
            damping=np.array([[1.0]]),
            initial_conditions={0: np.array([1.0]), 1: np.array([3.0])},
        )
        with_rate = _bdf(model_b, provider_b, BDFConfig(time_step=dt, total_time=1.0, order=2))
        with_rate.initialize()
        np.testing.assert_allclose(with_rate.first_derivative, [3.0])
        _step(with_rate, 3)
        np.testing.assert_allclose(with_rate.solution, plain.solution, rtol=1e-14)

    def test_history_after_initialize(self):
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=0.1, total_time=1.0, order=3))
        analyzer.initialize()
        assert len(analyzer.previous_solutions) == 3
        np.testing.assert_allclose(analyzer.previous_solutions[0], [1.0])
        np.testing.assert_allclose(analyzer.previous_solutions[1], [0.0])

    def test_history_shift(self):
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=0.1, total_time=1.0, order=2))
        analyzer.initialize()
        _step(analyzer, 1)
        u1 = analyzer.solution.copy()
        _step(analyzer, 1)
        np.testing.assert_allclose(analyzer.previous_solutions[0], u1)
        np.testing.assert_allclose(analyzer.previous_solutions[1], [1.0])


class TestBDFState:
    """スナップショットと再開."""

    def test_restart_matches_straight_run(self):
        cfg = BDFConfig(time_step=0.05, total_time=1.0, order=3)
        straight_model, straight_provider = _decay_model(load=lambda t: np.array([np.cos(t)]))
        straight = _bdf(straight_model, straight_provider, cfg)
        straight.initialize()
        _step(straight, 6)

        model_1, provider_1 = _decay_model(load=lambda t: np.array([np.cos(t)]))
        first = _bdf(model_1, provider_1, cfg)
        first.initialize()
        _step(first, 5)
        snapshot = first.create_state()
        assert isinstance(snapshot, BDFState)
        assert len(snapshot.previous_solutions) == 3

        model_2, provider_2 = _decay_model(load=lambda t: np.array([np.cos(t)]))
        resumed = _bdf(model_2, provider_2, cfg)
        resumed.initialize()
        resumed.restore_state(snapshot)
        _step(resumed, 1)
        np.testing.assert_allclose(resumed.solution, straight.solution, rtol=1e-12)
        np.testing.assert_allclose(resumed.first_derivative, straight.first_derivative, rtol=1e-12)

    def test_history_length_mismatch(self):
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=0.1, total_time=1.0, order=2))
        analyzer.initialize()
        state = BDFState(
            current_solution=np.zeros(1),
            previous_solutions=(np.zeros(1),),
            first_derivative=np.zeros(1),
        )
        with pytest.raises(ValueError, match="BDF 履歴数"):
            analyzer.restore_state(state)

    def test_missing_vector(self):
        model, provider = _decay_model()
        analyzer = _bdf(model, provider, BDFConfig(time_step=0.1, total_time=1.0, order=1))
        analyzer.initialize()
        state = BDFState(
            current_solution=np.zeros(1),
            previous_solutions=(np.zeros(1),),
            first_derivative=None,  # type: ignore[arg-type]
        )
        with pytest.raises(ValueError, match="first_derivative"):
            analyzer.restore_state(state)


class TestBDFConfig:
    """設定と問題階数の検査."""

    @pytest.mark.parametrize("order", [0, 6])
    def test_invalid_order(self, order):
        with pytest.raises(ValueError, match="BDF 次数"):
            BDFConfig(time_step=0.1, total_time=1.0, order=order)

    def test_rejects_second_order_problem(self):
        model = AlgebraicModel(1)
        provider = MatrixProvider(model, np.eye(1), damping=np.eye(1), mass=np.eye(1))
        child = LinearAnalyzer(model, provider, show_progress=False)
        with pytest.raises(ValueError, match="問題階数"):
            BDFDynamicAnalyzer(model, provider, child, BDFConfig(time_step=0.1, total_time=1.0))
