"""時間積分スキームの係数計算.

すべて純関数。スキームパラメータと時間刻みから、
  - 有効行列を組む各階行列の係数
  - 右辺の履歴項・微分更新に使う係数
を返す。

  - Newmark-β: a0..a7
  - 一般化α: αm, αf で重み付けした a0..a5 と更新用 a0N..a7N
  - BDF(k): k=1..5 の有理数係数（起動時は次数を段階的に上げる）
  - 中心差分: a0=1/dt², a1=1/(2dt)（条件付き安定・内部チェックなし）
"""

from __future__ import annotations

import math

from fe_analyzers.core.results import (
    BDFCoefficients,
    CentralDifferencesCoefficients,
    GeneralizedAlphaCoefficients,
    NewmarkCoefficients,
)

BDF_MAX_ORDER = 5

# 次数 k の BDF:  (numerator·u_{n+1} - Σ rhs_i·u_{n-i}) / dt = u̇_{n+1}
_BDF_NUMERATORS: dict[int, float] = {
    1: 1.0,
    2: 3.0 / 2.0,
    3: 11.0 / 6.0,
    4: 25.0 / 12.0,
    5: 137.0 / 60.0,
}

_BDF_RHS_FACTORS: dict[int, tuple[float, ...]] = {
    1: (1.0,),
    2: (4.0 / 2.0, -1.0 / 2.0),
    3: (18.0 / 6.0, -9.0 / 6.0, 2.0 / 6.0),
    4: (48.0 / 12.0, -36.0 / 12.0, 16.0 / 12.0, -3.0 / 12.0),
    5: (300.0 / 60.0, -300.0 / 60.0, 200.0 / 60.0, -75.0 / 60.0, 12.0 / 60.0),
}

_BDF_DERIVATIVE_FACTORS: dict[int, tuple[float, ...]] = {
    1: (1.0, -1.0),
    2: (3.0 / 2.0, -4.0 / 2.0, 1.0 / 2.0),
    3: (11.0 / 6.0, -18.0 / 6.0, 9.0 / 6.0, -2.0 / 6.0),
    4: (25.0 / 12.0, -48.0 / 12.0, 36.0 / 12.0, -16.0 / 12.0, 3.0 / 12.0),
    5: (137.0 / 60.0, -300.0 / 60.0, 300.0 / 60.0, -200.0 / 60.0, 75.0 / 60.0, -12.0 / 60.0),
}


def _check_time_step(dt: float) -> None:
    if not dt > 0.0:
        raise ValueError(f"dt は正値: {dt}")


# ====================================================================
# Newmark-β
# ====================================================================


def validate_newmark_parameters(
    beta: float,
    gamma: float,
    allow_conditionally_stable: bool = False,
) -> None:
    """Newmark パラメータの安定性条件を検査する.

    allow_conditionally_stable=False の場合は無条件安定（γ ≥ 1/2, β ≥ 1/4）を要求。
    いずれの場合も γ ≥ 1/2 と β ≥ (1/2 + γ)²/4 は常に要求する。

    Raises:
        ValueError: 条件を満たさない場合
    """
    if not allow_conditionally_stable:
        if gamma < 0.5:
            raise ValueError(f"無条件安定には gamma >= 0.5 が必要: {gamma}")
        if beta < 0.25:
            raise ValueError(f"無条件安定には beta >= 0.25 が必要: {beta}")
    if gamma < 0.5:
        raise ValueError(f"gamma は 0.5 以上: {gamma}")
    beta_limit = 0.25 * (0.5 + gamma) ** 2
    if beta < beta_limit:
        raise ValueError(f"beta は {beta_limit} 以上: {beta}")


def newmark_coefficients(beta: float, gamma: float, dt: float) -> NewmarkCoefficients:
    """Newmark-β 法の積分定数.

    Args:
        beta: Newmark β（Bathe の α）
        gamma: Newmark γ（Bathe の δ）
        dt: 時間刻み

    Returns:
        NewmarkCoefficients: a0..a7
    """
    _check_time_step(dt)
    if beta <= 0.0:
        raise ValueError(f"beta は正値（β=0 は陽解法の中心差分を使用）: {beta}")
    return NewmarkCoefficients(
        a0=1.0 / (beta * dt * dt),
        a1=gamma / (beta * dt),
        a2=1.0 / (beta * dt),
        a3=1.0 / (2.0 * beta) - 1.0,
        a4=gamma / beta - 1.0,
        a5=dt * 0.5 * (gamma / beta - 2.0),
        a6=dt * (1.0 - gamma),
        a7=gamma * dt,
    )


# ====================================================================
# 一般化α法
# ====================================================================


def spectral_radius_parameters(spectral_radius: float) -> tuple[float, float, float, float]:
    """高周波スペクトル半径 ρ∞ から (αm, αf, β, γ) を求める.

    αm = (2ρ-1)/(ρ+1), αf = ρ/(ρ+1),
    β = (1 - αm + αf)²/4, γ = 1/2 - αm + αf

    Args:
        spectral_radius: ρ∞ ∈ (0, 1]

    Returns:
        (alpha_m, alpha_f, beta, gamma)
    """
    rho = spectral_radius
    if not 0.0 < rho <= 1.0:
        raise ValueError(f"spectral_radius は (0, 1]: {rho}")
    alpha_m = (2.0 * rho - 1.0) / (rho + 1.0)
    alpha_f = rho / (rho + 1.0)
    beta = 0.25 * (1.0 - alpha_m + alpha_f) ** 2
    gamma = 0.5 - alpha_m + alpha_f
    return alpha_m, alpha_f, beta, gamma


def generalized_alpha_coefficients(
    beta: float,
    gamma: float,
    alpha_m: float,
    alpha_f: float,
    dt: float,
) -> GeneralizedAlphaCoefficients:
    """一般化α法の積分定数.

    αm = αf = 0 で Newmark-β の a0..a7 に一致する。
    """
    _check_time_step(dt)
    if beta <= 0.0:
        raise ValueError(f"beta は正値: {beta}")
    am, af = alpha_m, alpha_f
    return GeneralizedAlphaCoefficients(
        a0N=1.0 / (beta * dt * dt),
        a0=(1.0 - am) / (beta * dt * dt),
        a1=gamma * (1.0 - af) / (beta * dt),
        a2N=1.0 / (beta * dt),
        a2=(1.0 - am) / (beta * dt),
        a3N=1.0 / (2.0 * beta) - 1.0,
        a3=(1.0 - am) / (2.0 * beta) - 1.0,
        a4=(gamma - gamma * af) / beta - 1.0,
        a5=(1.0 - af) * dt * 0.5 * (gamma / beta - 2.0),
        a6N=dt * (1.0 - gamma),
        a7N=gamma * dt,
    )


# ====================================================================
# BDF
# ====================================================================


def validate_bdf_order(order: int) -> None:
    """BDF 次数 ∈ [1, 5] を検査する."""
    if not 1 <= order <= BDF_MAX_ORDER:
        raise ValueError(f"BDF 次数は [1, {BDF_MAX_ORDER}]: {order}")


def bdf_effective_order(step: int, order: int) -> int:
    """起動時の実効次数 min(step+1, order).

    履歴が step+1 個しかない間は高次の公式を使えない。
    """
    if step < 0:
        raise ValueError(f"step は 0 以上: {step}")
    validate_bdf_order(order)
    return min(step + 1, order)


def bdf_coefficients(order: int) -> BDFCoefficients:
    """k 次 BDF の係数セット."""
    validate_bdf_order(order)
    return BDFCoefficients(
        order=order,
        numerator=_BDF_NUMERATORS[order],
        rhs_factors=_BDF_RHS_FACTORS[order],
        derivative_factors=_BDF_DERIVATIVE_FACTORS[order],
    )


# ====================================================================
# 中心差分
# ====================================================================


def central_differences_coefficients(dt: float) -> CentralDifferencesCoefficients:
    """中心差分法の積分定数（陽解法・安定性チェックなし）."""
    _check_time_step(dt)
    a0 = 1.0 / (dt * dt)
    a2 = 2.0 * a0
    return CentralDifferencesCoefficients(
        a0=a0,
        a1=1.0 / (2.0 * dt),
        a2=a2,
        a3=1.0 / a2,
    )


def critical_time_step(omega_max: float) -> float:
    """中心差分の臨界時間刻み Δt_cr = 2/ω_max."""
    if not omega_max > 0.0 or math.isinf(omega_max):
        raise ValueError(f"omega_max は正の有限値: {omega_max}")
    return 2.0 / omega_max
