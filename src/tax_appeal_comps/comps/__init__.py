from .engine import ComparableEngine, build_engine
from .io import ComparableReport
from .merge import has_discrepancy

__all__ = ["ComparableEngine", "ComparableReport", "build_engine", "has_discrepancy"]
