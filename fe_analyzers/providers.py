"""参照用の物理プロバイダ.

要素層の代わりに全 DOF の系行列（またはコールバック）を受け取り、
自由 DOF 空間の行列・外力・内力としてアナライザへ提供する。

  - MatrixProvider:    定数 K, C, M（線形問題・時間積分の検証用）
  - NonlinearProvider: 接線剛性・内力コールバック（u → K_T(u), u → f_int(u)）
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import numpy as np
import scipy.sparse as sp

from fe_analyzers.bc import broadcast_prescribed_values, dirichlet_equivalent_loads, partition_matrix
from fe_analyzers.core.protocols import DifferentiationOrder, TransientAnalysisPhase
from fe_analyzers.core.results import PartitionedMatrix, TransientAnalysisCoefficients
from fe_analyzers.core.state import AnalyzerState
from fe_analyzers.model import AlgebraicModel

LoadSpec = Callable[[float], np.ndarray] | np.ndarray | None


def _combine(terms: list[tuple[float, Any]], n: int, sparse: bool) -> Any:
    """係数付き行列の和. 疎行列が混じる場合は CSR で返す."""
    if sparse:
        total = sp.csr_matrix((n, n), dtype=float)
        for coeff, A in terms:
            total = total + coeff * sp.csr_matrix(A)
        return total.tocsr()
    total_d = np.zeros((n, n), dtype=float)
    for coeff, A in terms:
        total_d += coeff * (A.toarray() if sp.issparse(A) else A)
    return total_d


class MatrixProvider:
    """定数の系行列を持つプロバイダ.

    Args:
        model: 代数モデル（自由/拘束 DOF 分割）
        stiffness: (n_dofs, n_dofs) 0 階行列 K（熱伝導なら伝導行列）
        damping: 1 階行列 C（熱伝導なら熱容量行列）。None = なし
        mass: 2 階行列 M。None = なし
        load: 外力 f(t) → (n_dofs,)、または定数ベクトル、None = 0
        initial_conditions: {階数: (n_dofs,) 初期値}（0: 変位, 1: 速度, 2: 加速度）
        prescribed_values: 拘束 DOF の規定値（スカラー or 拘束 DOF 同長配列）
        on_commit: update_state 時に呼ばれるコールバック
    """

    def __init__(
        self,
        model: AlgebraicModel,
        stiffness: np.ndarray | sp.spmatrix,
        *,
        damping: np.ndarray | sp.spmatrix | None = None,
        mass: np.ndarray | sp.spmatrix | None = None,
        load: LoadSpec = None,
        initial_conditions: Mapping[int, np.ndarray] | None = None,
        prescribed_values: float | np.ndarray = 0.0,
        on_commit: Callable[[AnalyzerState | None], None] | None = None,
    ) -> None:
        self.model = model
        self._sparse = any(sp.issparse(A) for A in (stiffness, damping, mass) if A is not None)
        self._blocks: dict[DifferentiationOrder, PartitionedMatrix] = {}
        for order, A in (
            (DifferentiationOrder.ZERO, stiffness),
            (DifferentiationOrder.FIRST, damping),
            (DifferentiationOrder.SECOND, mass),
        ):
            if A is None:
                continue
            if A.shape != (model.n_dofs, model.n_dofs):
                raise ValueError(f"系行列サイズがモデルと一致しません: {A.shape}")
            self._blocks[order] = partition_matrix(A, model.partition)

        if mass is not None:
            self.problem_order = DifferentiationOrder.SECOND
        elif damping is not None:
            self.problem_order = DifferentiationOrder.FIRST
        else:
            self.problem_order = DifferentiationOrder.ZERO

        self._load = load
        self._initial_conditions: dict[int, np.ndarray] = {}
        for order, vec in (initial_conditions or {}).items():
            vec = np.asarray(vec, dtype=float).reshape(-1)
            if vec.shape[0] != model.n_dofs:
                raise ValueError(f"初期条件サイズがモデルと一致しません: {vec.shape[0]}")
            self._initial_conditions[int(order)] = vec[model.free_dofs].copy()

        self.prescribed_values = broadcast_prescribed_values(prescribed_values, model.partition)
        self.constraint_scaling = 1.0
        self.phase = TransientAnalysisPhase.SOLUTION
        self.committed_states: list[AnalyzerState | None] = []
        self._on_commit = on_commit

    # ----------------------------------------------------------------
    # 系行列
    # ----------------------------------------------------------------

    def _zero_order_blocks(self) -> PartitionedMatrix:
        return self._blocks[DifferentiationOrder.ZERO]

    def _block(self, order: DifferentiationOrder) -> PartitionedMatrix | None:
        if order == DifferentiationOrder.ZERO:
            return self._zero_order_blocks()
        return self._blocks.get(order)

    def get_matrix(self, order: DifferentiationOrder) -> Any:
        """指定階数の自由-自由ブロック. 定義のない階数はゼロ行列."""
        block = self._block(DifferentiationOrder(order))
        n = self.model.n_free
        if block is None:
            return sp.csr_matrix((n, n), dtype=float) if self._sparse else np.zeros((n, n))
        return block.ff

    def linear_combination_of_matrices_into_effective_matrix(
        self, coefficients: TransientAnalysisCoefficients
    ) -> Any:
        """有効行列 zero·K + first·C + second·M."""
        terms: list[tuple[float, Any]] = []
        for order, coeff in (
            (DifferentiationOrder.ZERO, coefficients.zero),
            (DifferentiationOrder.FIRST, coefficients.first),
            (DifferentiationOrder.SECOND, coefficients.second),
        ):
            if coeff == 0.0:
                continue
            block = self._block(order)
            if block is not None:
                terms.append((coeff, block.ff))
        return _combine(terms, self.model.n_free, self._sparse)

    # ----------------------------------------------------------------
    # ベクトル
    # ----------------------------------------------------------------

    def _full_load(self, time: float) -> np.ndarray:
        if self._load is None:
            return np.zeros(self.model.n_dofs, dtype=float)
        if callable(self._load):
            return np.asarray(self._load(time), dtype=float).reshape(-1)
        return np.asarray(self._load, dtype=float).reshape(-1)

    def get_rhs(self, time: float) -> np.ndarray:
        f = self._full_load(time)
        if f.shape[0] != self.model.n_dofs:
            raise ValueError(f"外力サイズがモデルと一致しません: {f.shape[0]}")
        return f[self.model.free_dofs].copy()

    def _applied_prescribed_values(self) -> np.ndarray:
        return self.constraint_scaling * self.prescribed_values

    def _initial_condition_response(self, solution: np.ndarray) -> np.ndarray:
        """初期条件評価中の応答: 未知数は最高階の微分量なので A_p·x."""
        return np.asarray(self.get_matrix(self.problem_order) @ solution, dtype=float).reshape(-1)

    def calculate_response_integral_vector(self, solution: np.ndarray) -> np.ndarray:
        """内力 K_ff·u + K_fc·u_c（u_c は現在の適用率で縮尺した規定値）."""
        if self.phase == TransientAnalysisPhase.INITIAL_CONDITION_EVALUATION:
            return self._initial_condition_response(solution)
        block = self._zero_order_blocks()
        f_int = np.asarray(block.ff @ solution, dtype=float).reshape(-1)
        return f_int + dirichlet_equivalent_loads(block.fc, self._applied_prescribed_values())

    def process_internal_rhs(self, solution: np.ndarray, rhs: np.ndarray) -> None:
        return None

    def calculate_rhs_norm(self, rhs: np.ndarray) -> float:
        return float(np.linalg.norm(rhs))

    def reset(self) -> None:
        return None

    def update_state(self, state: AnalyzerState | None) -> None:
        self.committed_states.append(state)
        if self._on_commit is not None:
            self._on_commit(state)

    def get_equivalent_nodal_loads(self, solution: np.ndarray, scaling_factor: float) -> np.ndarray:
        return dirichlet_equivalent_loads(self._zero_order_blocks().fc, self.prescribed_values, scaling_factor)

    def scale_constraints(self, scaling_factor: float) -> None:
        self.constraint_scaling = scaling_factor

    def get_vector_from_model_conditions(self, order: DifferentiationOrder, time: float) -> np.ndarray:
        """初期条件（time = 0 のみ）. それ以外の時刻はゼロ."""
        if time == 0.0 and int(order) in self._initial_conditions:
            return self._initial_conditions[int(order)].copy()
        return self.model.create_zero_vector()

    def set_transient_analysis_phase(self, phase: TransientAnalysisPhase) -> None:
        self.phase = phase


class NonlinearProvider(MatrixProvider):
    """接線剛性・内力をコールバックで与えるプロバイダ.

    コールバックは全 DOF ベクトル（拘束 DOF には現在の適用率の規定値を入れる）を受け取り、
    全 DOF サイズの行列・ベクトルを返す。接線は最後に内力を評価した解で組み立て、
    reset() で破棄する（修正 Newton 法では再構築間隔の間キャッシュが残る）。

    Args:
        model: 代数モデル
        assemble_tangent: u → K_T(u) (n_dofs, n_dofs)
        assemble_internal_force: u → f_int(u) (n_dofs,)
        その他は MatrixProvider と同じ
    """

    def __init__(
        self,
        model: AlgebraicModel,
        assemble_tangent: Callable[[np.ndarray], np.ndarray | sp.spmatrix],
        assemble_internal_force: Callable[[np.ndarray], np.ndarray],
        *,
        damping: np.ndarray | sp.spmatrix | None = None,
        mass: np.ndarray | sp.spmatrix | None = None,
        load: LoadSpec = None,
        initial_conditions: Mapping[int, np.ndarray] | None = None,
        prescribed_values: float | np.ndarray = 0.0,
        on_commit: Callable[[AnalyzerState | None], None] | None = None,
    ) -> None:
        self._assemble_tangent = assemble_tangent
        self._assemble_internal_force = assemble_internal_force
        self._current_solution = np.zeros(model.n_free, dtype=float)
        self._tangent: PartitionedMatrix | None = None
        K0 = assemble_tangent(np.zeros(model.n_dofs, dtype=float))
        super().__init__(
            model,
            K0,
            damping=damping,
            mass=mass,
            load=load,
            initial_conditions=initial_conditions,
            prescribed_values=prescribed_values,
            on_commit=on_commit,
        )

    def _full(self, solution: np.ndarray) -> np.ndarray:
        return self.model.expand(solution, self._applied_prescribed_values())

    def _zero_order_blocks(self) -> PartitionedMatrix:
        if self._tangent is None:
            K_T = self._assemble_tangent(self._full(self._current_solution))
            self._tangent = partition_matrix(K_T, self.model.partition)
        return self._tangent

    def calculate_response_integral_vector(self, solution: np.ndarray) -> np.ndarray:
        if self.phase == TransientAnalysisPhase.INITIAL_CONDITION_EVALUATION:
            return self._initial_condition_response(solution)
        self._current_solution = np.array(solution, dtype=float)
        f_int = np.asarray(self._assemble_internal_force(self._full(solution)), dtype=float)
        return f_int.reshape(-1)[self.model.free_dofs].copy()

    def get_equivalent_nodal_loads(self, solution: np.ndarray, scaling_factor: float) -> np.ndarray:
        K_T = self._assemble_tangent(self._full(solution))
        fc = partition_matrix(K_T, self.model.partition).fc
        return dirichlet_equivalent_loads(fc, self.prescribed_values, scaling_factor)

    def reset(self) -> None:
        self._tangent = None
