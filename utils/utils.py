"""
Utilities for the voting engine: logging setup, result persistence and
performance monitoring.
"""

import dataclasses
import json
import logging
import platform
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import psutil

from curves.ed25519 import Ed25519Keypair, Ed25519PublicKey
from curves.secp256k1 import Point

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None):
    """Configure root logging to a file and the console"""
    if log_file is None:
        log_dir = Path("logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / \
            f"voting_engine_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Clear existing handlers to avoid duplicates
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger.info(f"Logging initialized. Log file: {log_file}")
    return logger


# ============================================================================
# PERFORMANCE MONITORING
# ============================================================================


@dataclass
class PerformanceMetrics:
    operation: str
    duration_seconds: float
    cpu_percent: float
    memory_mb: float
    timestamp: float
    additional_data: Dict[str, Any] = field(default_factory=dict)


class PerformanceMonitor:
    """Collects per-operation timings with process CPU and memory readings"""

    def __init__(self):
        self.metrics: List[PerformanceMetrics] = []
        self.process = psutil.Process()

    def start_operation(self, operation_name: str) -> 'OperationContext':
        return OperationContext(self, operation_name)

    def record_metric(self, metric: PerformanceMetrics):
        self.metrics.append(metric)

    def get_summary(self) -> Dict[str, Any]:
        summary = {
            'total_operations': len(self.metrics),
            'operations': {}
        }

        operation_groups: Dict[str, List[PerformanceMetrics]] = {}
        for metric in self.metrics:
            operation_groups.setdefault(metric.operation, []).append(metric)

        for op_name, metrics in operation_groups.items():
            durations = np.array([m.duration_seconds for m in metrics])
            cpu_usages = [m.cpu_percent for m in metrics if m.cpu_percent > 0]
            memory_usages = [m.memory_mb for m in metrics if m.memory_mb > 0]
            total = float(durations.sum())

            summary['operations'][op_name] = {
                'count': len(metrics),
                'total_duration': total,
                'avg_duration': float(np.mean(durations)),
                'min_duration': float(durations.min()),
                'max_duration': float(durations.max()),
                'std_duration': float(np.std(durations)) if len(durations) > 1 else 0.0,
                'p95_duration': float(np.percentile(durations, 95)),
                'avg_cpu_percent': float(np.mean(cpu_usages)) if cpu_usages else 0.0,
                'avg_memory_mb': float(np.mean(memory_usages)) if memory_usages else 0.0,
                'peak_memory_mb': max(memory_usages) if memory_usages else 0.0,
                'throughput_ops_per_sec': len(metrics) / total if total > 0 else 0.0
            }

        summary['total_duration'] = sum(
            op_data['total_duration']
            for op_data in summary['operations'].values()
        )
        return summary

    def reset(self):
        self.metrics.clear()


class OperationContext:
    """Context manager timing one monitored operation"""

    def __init__(self, monitor: PerformanceMonitor, operation_name: str):
        self.monitor = monitor
        self.operation_name = operation_name
        self.start_time = None
        self.start_memory = 0.0

    def __enter__(self):
        self.start_time = time.time()
        self.monitor.process.cpu_percent()
        self.start_memory = self.monitor.process.memory_info().rss / 1024 / 1024
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        cpu = self.monitor.process.cpu_percent()
        end_memory = self.monitor.process.memory_info().rss / 1024 / 1024

        self.monitor.record_metric(PerformanceMetrics(
            operation=self.operation_name,
            duration_seconds=duration,
            cpu_percent=cpu,
            memory_mb=max(self.start_memory, end_memory),
            timestamp=self.start_time,
            additional_data={'exception': exc_type is not None}
        ))
        return False


def get_system_info() -> Dict[str, Any]:
    vm = psutil.virtual_memory()
    return {
        'platform': platform.platform(),
        'python_version': platform.python_version(),
        'machine': platform.machine(),
        'cpu_count_logical': psutil.cpu_count(logical=True),
        'total_memory_gb': round(vm.total / 1024 / 1024 / 1024, 2),
        'timestamp': datetime.now().isoformat()
    }


# ============================================================================
# RESULT PERSISTENCE
# ============================================================================


def to_serializable(obj):
    """Convert protocol objects into JSON-friendly values"""
    if isinstance(obj, Point):
        return None if obj.is_identity else obj.hex()
    elif isinstance(obj, Ed25519PublicKey):
        return obj.hex()
    elif isinstance(obj, Ed25519Keypair):
        return obj.public_key.hex()
    elif dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_serializable(getattr(obj, f.name))
                for f in dataclasses.fields(obj) if f.repr}
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set)):
        return [to_serializable(item) for item in obj]
    elif isinstance(obj, (np.integer, np.floating)):
        return obj.item()
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, (bytes, bytearray)):
        return bytes(obj).hex()
    elif isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    return obj


def save_results(results: Dict[str, Any], filepath: Path):
    """Save results to JSON with run metadata"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    enhanced_results = {
        'metadata': {
            'generated_at': datetime.now().isoformat(),
            'system_info': get_system_info(),
            'file_path': str(filepath)
        },
        'data': to_serializable(results)
    }

    with open(filepath, 'w') as f:
        json.dump(enhanced_results, f, indent=2, default=str)

    logger.info(f"Results saved to {filepath}")


def create_performance_report(metrics: PerformanceMonitor) -> str:
    """Human-readable report of the monitored operations"""
    summary = metrics.get_summary()

    report = []
    report.append("=" * 80)
    report.append("THRESHOLD VOTING ENGINE - PERFORMANCE REPORT")
    report.append("=" * 80)
    report.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    report.append(f"Total Operations: {summary.get('total_operations', 0)}")
    report.append(f"Total Duration: {format_duration(summary.get('total_duration', 0))}")
    report.append("")

    if summary['operations']:
        report.append("OPERATION BREAKDOWN:")
        report.append("-" * 60)

        for op_name, op_data in summary['operations'].items():
            report.append(f"\n{op_name.upper()}:")
            report.append(f"  Executions: {op_data['count']}")
            report.append(f"  Total Time: {op_data['total_duration']:.3f}s")
            report.append(f"  Average Time: {op_data['avg_duration']:.4f}s")
            report.append(
                f"  Min/Max Time: {op_data['min_duration']:.4f}s / {op_data['max_duration']:.4f}s")
            report.append(f"  Std Deviation: {op_data['std_duration']:.4f}s")
            report.append(
                f"  Throughput: {op_data['throughput_ops_per_sec']:.2f} ops/sec")
            if op_data['avg_memory_mb'] > 0:
                report.append(
                    f"  Peak Memory: {op_data['peak_memory_mb']:.1f} MB")
    else:
        report.append("No performance data available.")

    report.append("")
    report.append("=" * 80)
    return "\n".join(report)


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format"""
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs:.1f}s"
