"""Application services."""

from fusionrelay.services.coordinator import SwapCoordinator

__all__ = ["SwapCoordinator"]
