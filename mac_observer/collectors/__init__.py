from mac_observer.collectors.disk import DiskCollector
from mac_observer.collectors.framing import StreamFramer, split_lines, split_plist_documents
from mac_observer.collectors.logs import LogCollector
from mac_observer.collectors.metrics import MetricsCollector
from mac_observer.collectors.restart import RestartDecision, RestartPolicy
from mac_observer.collectors.sampling import PressureOracle, SamplingController
from mac_observer.collectors.supervisor import CollectorState, ProcessSupervisor

__all__ = [
    "CollectorState",
    "DiskCollector",
    "LogCollector",
    "MetricsCollector",
    "PressureOracle",
    "ProcessSupervisor",
    "RestartDecision",
    "RestartPolicy",
    "SamplingController",
    "StreamFramer",
    "split_lines",
    "split_plist_documents",
]
