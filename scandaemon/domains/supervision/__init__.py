from .supervisor import ScanSupervisor, WorkerHandle

__all__ = ["ScanSupervisor", "WorkerHandle"]
