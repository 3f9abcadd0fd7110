"""
pytest configuration for the Midaz resilience tests.

Adds src directory to Python path for imports and provides shared fakes.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from midaz_core.logging import clear_log_context  # noqa: E402
from midaz_core.telemetry import reset_sink  # noqa: E402


class RecordingSpan:
    """Span that remembers everything done to it."""

    def __init__(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self.exceptions: List[BaseException] = []
        self.status: Optional[str] = None
        self.status_message: Optional[str] = None
        self.end_count = 0

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def record_exception(self, error: BaseException) -> None:
        self.exceptions.append(error)

    def set_status(self, status: str, message: Optional[str] = None) -> None:
        self.status = status
        self.status_message = message

    def end(self) -> None:
        self.end_count += 1


class RecordingSink:
    def __init__(self):
        self.spans: List[RecordingSpan] = []

    def start_span(self, name: str, attributes=None) -> RecordingSpan:
        span = RecordingSpan(name, attributes)
        self.spans.append(span)
        return span

    def named(self, name: str) -> List[RecordingSpan]:
        return [span for span in self.spans if span.name == name]


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture(autouse=True)
def _reset_module_state():
    """Keep the module-level sink and log context from leaking between tests."""
    yield
    reset_sink()
    clear_log_context()
