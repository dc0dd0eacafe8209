from .supervisor import BridgeSupervisor, ClientRegistry
from .worker import BridgeWorker, WorkerState, WorkerStats

__all__ = ["BridgeSupervisor", "BridgeWorker", "ClientRegistry", "WorkerState", "WorkerStats"]
