"""アナライザ状態のスナップショット.

中断・再開・再起動に必要な最小限のベクトル／スカラーをスキーム毎の
型付きレコードとして保持する。文字列キーの辞書は使わない。

復元時の不整合は即座に例外とする:
  - スナップショットの型違い   → TypeError
  - ベクトル欠落 (None)・長さ違い・履歴数違い → ValueError
欠落ベクトルをゼロとみなすと再開後の時刻歴が黙って壊れるため。
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import TypeVar

import numpy as np

S = TypeVar("S", bound="AnalyzerState")


@dataclass(frozen=True, kw_only=True)
class AnalyzerState:
    """全スナップショット共通の時刻情報.

    Attributes:
        time: 現在時刻 (= current_step * dt)
        current_step: 現在のステップ番号
    """

    time: float = 0.0
    current_step: int = 0

    def copy(self: S) -> S:
        """ベクトルを深くコピーしたスナップショットを返す."""
        changes = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                changes[f.name] = value.copy()
            elif isinstance(value, tuple):
                changes[f.name] = tuple(v.copy() for v in value)
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True, kw_only=True)
class StaticState(AnalyzerState):
    """静解析（状態ベクトルなし）."""


@dataclass(frozen=True, kw_only=True)
class PseudoTransientState(AnalyzerState):
    """擬似過渡解析（時刻情報のみ）."""


@dataclass(frozen=True, kw_only=True)
class IncrementState(AnalyzerState):
    """増分ソルバーの収束済み解."""

    current_solution: np.ndarray


@dataclass(frozen=True, kw_only=True)
class NewmarkState(AnalyzerState):
    """Newmark-β 法の状態 (u, v, a)."""

    current_solution: np.ndarray
    first_derivative: np.ndarray
    second_derivative: np.ndarray


@dataclass(frozen=True, kw_only=True)
class GeneralizedAlphaState(AnalyzerState):
    """一般化α法の状態 (u_n, u_{n-1}, v, a)."""

    current_solution: np.ndarray
    previous_solution: np.ndarray
    first_derivative: np.ndarray
    second_derivative: np.ndarray


@dataclass(frozen=True, kw_only=True)
class BDFState(AnalyzerState):
    """BDF 法の状態.

    Attributes:
        current_solution: u_n
        previous_solutions: (u_{n-1}, u_{n-2}, ...) 長さは BDF 次数
        first_derivative: 最新の 1 階微分推定値
    """

    current_solution: np.ndarray
    previous_solutions: tuple[np.ndarray, ...]
    first_derivative: np.ndarray


@dataclass(frozen=True, kw_only=True)
class CentralDifferencesState(AnalyzerState):
    """中心差分法の状態 (u_n, u_{n-1}, v, a)."""

    current_solution: np.ndarray
    previous_solution: np.ndarray
    first_derivative: np.ndarray
    second_derivative: np.ndarray


@dataclass(frozen=True, kw_only=True)
class ThermalState(AnalyzerState):
    """θ法熱伝導解析の状態 (T_n, 前ステップ外力)."""

    current_solution: np.ndarray
    previous_rhs: np.ndarray


def check_state_type(state: AnalyzerState, expected: type[S]) -> S:
    """スナップショットの型を検査して返す."""
    if not isinstance(state, expected):
        raise TypeError(
            f"状態スナップショットの型が不正: {type(state).__name__} "
            f"(期待: {expected.__name__})"
        )
    return state


def restore_vector(target: np.ndarray, source: np.ndarray | None, name: str) -> None:
    """スナップショットのベクトルを target へ in-place コピーする."""
    if source is None:
        raise ValueError(f"状態ベクトル '{name}' がありません")
    source = np.asarray(source, dtype=float)
    if source.shape != target.shape:
        raise ValueError(
            f"状態ベクトル '{name}' の形状が一致しません: {source.shape} != {target.shape}"
        )
    target[:] = source
