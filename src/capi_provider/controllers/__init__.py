from .status import CapacityClassStatusController, ReconcileResult

__all__ = ["CapacityClassStatusController", "ReconcileResult"]
