"""fe_analyzers - 有限要素解析のアナライザ層.

親アナライザ（静解析・時間積分・分離反復）が有効行列と右辺を組み、
子アナライザ（線形・増分 Newton-Raphson・弧長法）が線形系を解く。

  from fe_analyzers import (
      AlgebraicModel, MatrixProvider, LinearAnalyzer, StaticAnalyzer,
  )
  model = AlgebraicModel(n_dofs=3, fixed_dofs=[0])
  provider = MatrixProvider(model, K, load=f)
  child = LinearAnalyzer(model, provider)
  parent = StaticAnalyzer(model, provider, child)
  parent.initialize()
  parent.solve()
"""

from fe_analyzers.arc_length import ArcLengthAnalyzer, ArcLengthConfig, select_arc_length_root
from fe_analyzers.dynamics import (
    BDFConfig,
    BDFDynamicAnalyzer,
    CentralDifferencesConfig,
    CentralDifferencesDynamicAnalyzer,
    GeneralizedAlphaConfig,
    GeneralizedAlphaDynamicAnalyzer,
    NewmarkConfig,
    NewmarkDynamicAnalyzer,
    PseudoTransientAnalyzer,
    PseudoTransientConfig,
    ThermalConfig,
    ThermalDynamicAnalyzer,
    TimeIntegrationConfig,
)
from fe_analyzers.linear_system import LinearSystem
from fe_analyzers.model import AlgebraicModel
from fe_analyzers.nonlinear import (
    AnalysisCancelled,
    IncrementConfig,
    IncrementStrategy,
    NonLinearAnalyzer,
)
from fe_analyzers.providers import MatrixProvider, NonlinearProvider
from fe_analyzers.staggered import StaggeredAnalyzer, StaggeredConfig, StepwiseStaggeredAnalyzer
from fe_analyzers.static import LinearAnalyzer, StaticAnalyzer

__all__ = [
    "AlgebraicModel",
    "LinearSystem",
    "MatrixProvider",
    "NonlinearProvider",
    "LinearAnalyzer",
    "StaticAnalyzer",
    "IncrementConfig",
    "IncrementStrategy",
    "NonLinearAnalyzer",
    "AnalysisCancelled",
    "ArcLengthConfig",
    "ArcLengthAnalyzer",
    "select_arc_length_root",
    "TimeIntegrationConfig",
    "NewmarkConfig",
    "NewmarkDynamicAnalyzer",
    "GeneralizedAlphaConfig",
    "GeneralizedAlphaDynamicAnalyzer",
    "BDFConfig",
    "BDFDynamicAnalyzer",
    "CentralDifferencesConfig",
    "CentralDifferencesDynamicAnalyzer",
    "ThermalConfig",
    "ThermalDynamicAnalyzer",
    "PseudoTransientConfig",
    "PseudoTransientAnalyzer",
    "StaggeredConfig",
    "StaggeredAnalyzer",
    "StepwiseStaggeredAnalyzer",
]
