from .coordinator import WriteCoordinator

__all__ = ["WriteCoordinator"]
