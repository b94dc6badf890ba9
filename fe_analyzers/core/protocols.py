"""アナライザと外部協調オブジェクトの抽象インタフェース定義.

Protocol 階層:
  LinearSystemProtocol       : 線形系（行列・右辺・解・求解）
  AlgebraicModelProtocol     : 代数モデル（ゼロベクトル生成・DOF 番号付け）
  ProviderProtocol           : 物理プロバイダ（各階行列・外力・内力・状態確定）
  ChildAnalyzerProtocol      : 増分ソルバー（線形 / 非線形 / 弧長法）
  ParentAnalyzerProtocol     : 親アナライザ（静解析 / 時間積分）
  StepwiseAnalyzerProtocol   : 1 ステップ単位で進められる時間積分アナライザ

親子関係は相互参照ではなく、親が ParentContract（必要な操作だけを束ねた
読み取り専用ビュー）を子へ渡す形にする。
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import numpy as np

from fe_analyzers.core.results import AnalysisStatistics, TransientAnalysisCoefficients

if TYPE_CHECKING:
    from fe_analyzers.core.state import AnalyzerState


class DifferentiationOrder(IntEnum):
    """系行列の微分階数（0=剛性, 1=減衰/熱容量, 2=質量）."""

    ZERO = 0
    FIRST = 1
    SECOND = 2


class TransientAnalysisPhase(Enum):
    """時間積分の解析フェーズ."""

    SOLUTION = "solution"
    INITIAL_CONDITION_EVALUATION = "initial_condition_evaluation"


@runtime_checkable
class LinearSystemProtocol(Protocol):
    """線形系 A·x = b のインタフェース.

    Attributes:
        matrix: 有効行列 A（密 or 疎）。代入で分解キャッシュが無効化される。
        rhs: 右辺ベクトル b
        solution: 最新の解ベクトル x（未求解なら None）
        size: 自由度数
    """

    matrix: Any
    rhs: np.ndarray
    solution: np.ndarray | None
    size: int

    def solve(self) -> np.ndarray:
        """現在の matrix, rhs で求解し、solution を更新して返す."""
        ...

    def create_zero_vector(self) -> np.ndarray:
        """系サイズのゼロベクトルを返す."""
        ...


@runtime_checkable
class AlgebraicModelProtocol(Protocol):
    """代数モデル（自由 DOF 空間）のインタフェース."""

    linear_system: LinearSystemProtocol

    def create_zero_vector(self) -> np.ndarray:
        """自由 DOF 数のゼロベクトルを返す."""
        ...

    def order_dofs(self) -> None:
        """DOF の番号付けを行い、線形系を確保する."""
        ...

    def add_to_global_vector(self, source: Mapping[int, float], target: np.ndarray) -> None:
        """モデル DOF 番号で与えた値を自由 DOF ベクトルへ加算する."""
        ...


@runtime_checkable
class ProviderProtocol(Protocol):
    """物理プロバイダ（要素層）のインタフェース.

    要素剛性・質量や構成則はこの背後にあり、アナライザは各階の
    行列・外力・内力ベクトルとしてのみ扱う。

    Attributes:
        problem_order: 問題の最高微分階数（0: 静, 1: 熱伝導等, 2: 動力学）
    """

    problem_order: DifferentiationOrder

    def get_matrix(self, order: DifferentiationOrder) -> Any:
        """指定階数の系行列（自由 DOF ブロック）を返す."""
        ...

    def linear_combination_of_matrices_into_effective_matrix(
        self, coefficients: TransientAnalysisCoefficients
    ) -> Any:
        """各階行列の線形結合で有効行列を作って返す."""
        ...

    def get_rhs(self, time: float) -> np.ndarray:
        """時刻 time の外力ベクトル（自由 DOF）を返す."""
        ...

    def calculate_response_integral_vector(self, solution: np.ndarray) -> np.ndarray:
        """解 solution における内力ベクトルを返す."""
        ...

    def process_internal_rhs(self, solution: np.ndarray, rhs: np.ndarray) -> None:
        """内力ベクトルの後処理フック（in-place）."""
        ...

    def calculate_rhs_norm(self, rhs: np.ndarray) -> float:
        """右辺ベクトルのノルム."""
        ...

    def reset(self) -> None:
        """キャッシュされた接線行列を無効化する."""
        ...

    def update_state(self, state: AnalyzerState | None) -> None:
        """収束した状態（材料履歴等）を確定する."""
        ...

    def get_equivalent_nodal_loads(self, solution: np.ndarray, scaling_factor: float) -> np.ndarray:
        """規定変位（Dirichlet 値 × scaling_factor）による等価節点力."""
        ...

    def scale_constraints(self, scaling_factor: float) -> None:
        """規定変位の適用率を設定する（変位制御用）."""
        ...

    def get_vector_from_model_conditions(self, order: DifferentiationOrder, time: float) -> np.ndarray:
        """初期条件・規定値から指定階数のベクトルを返す."""
        ...

    def set_transient_analysis_phase(self, phase: TransientAnalysisPhase) -> None:
        """解析フェーズを通知する."""
        ...


@dataclass(frozen=True)
class ParentContract:
    """子アナライザに渡す親の操作ビュー.

    親オブジェクト自体への参照は持たせず、子が必要とする 3 操作だけを
    呼び出し可能オブジェクトとして渡す。

    Attributes:
        build_matrices: 有効行列を再構築して線形系へ設定する
        get_other_rhs_components: 慣性・減衰等の擬似内力 x -> f
        create_state: 親の現在状態のスナップショットを作る
    """

    build_matrices: Callable[[], None]
    get_other_rhs_components: Callable[[np.ndarray], np.ndarray]
    create_state: Callable[[], AnalyzerState]


@runtime_checkable
class ChildAnalyzerProtocol(Protocol):
    """増分ソルバー（子アナライザ）のインタフェース."""

    parent: ParentContract | None
    analysis_statistics: AnalysisStatistics
    logs: list[Any]

    @property
    def current_analysis_result(self) -> np.ndarray:
        """現在の解ベクトル."""
        ...

    def initialize(self, is_first_analysis: bool = True) -> None: ...

    def solve(self) -> None: ...


@runtime_checkable
class ParentAnalyzerProtocol(Protocol):
    """親アナライザのインタフェース."""

    child_analyzer: ChildAnalyzerProtocol | None

    def initialize(self, is_first_analysis: bool = True) -> None: ...

    def solve(self) -> None: ...

    def build_matrices(self) -> None: ...

    def get_other_rhs_components(self, current_solution: np.ndarray) -> np.ndarray: ...

    def create_state(self) -> AnalyzerState: ...

    @property
    def analysis_statistics(self) -> Any: ...


@runtime_checkable
class StepwiseAnalyzerProtocol(ParentAnalyzerProtocol, Protocol):
    """1 ステップずつ進められるアナライザ（連成解析から駆動される）."""

    @property
    def steps(self) -> int: ...

    @property
    def current_step(self) -> int: ...

    def solve_current_step(self) -> None: ...

    def advance_step(self) -> None: ...
