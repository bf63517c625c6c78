# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Tracing hook for compose invocations.

The core does not ship a tracing backend. Callers that want spans pass an
object satisfying ``Tracer`` (an OpenTelemetry or APM adapter, for example)
to the entry points that perform driver calls.
"""
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol


class Span(Protocol):
    """Minimal span interface."""

    def set_attribute(self, key: str, value: Any) -> None:
        ...

    def set_status(self, status: str, description: Optional[str] = None) -> None:
        ...

    def record_exception(self, exception: Exception) -> None:
        ...

    def end(self) -> None:
        ...


class Tracer(Protocol):
    """Creates spans. Implemented by the caller."""

    def start_span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Span:
        ...


class NoOpSpan:
    """Span that records nothing."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: str, description: Optional[str] = None) -> None:
        pass

    def record_exception(self, exception: Exception) -> None:
        pass

    def end(self) -> None:
        pass


class NoOpTracer:
    """Tracer used when the caller does not supply one."""

    def start_span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Span:
        return NoOpSpan()


@contextmanager
def start_span(tracer: Optional[Tracer],
               name: str,
               span_type: str,
               attributes: Optional[Dict[str, Any]] = None) -> Iterator[Span]:
    """
    Opens a span around a block, marking it ok or error on exit.

    :param tracer: The caller's tracer, or None for no tracing.
    :param name: Human readable span name.
    :param span_type: Dotted span type, e.g. ``docker-compose.services.up``.
    :param attributes: Initial span attributes.
    """
    tracer = tracer or NoOpTracer()
    span = tracer.start_span(name, {"span.type": span_type, **(attributes or {})})
    started = time.monotonic()
    try:
        yield span
    except Exception as e:
        span.record_exception(e)
        span.set_status("error", str(e))
        raise
    else:
        span.set_status("ok")
    finally:
        span.set_attribute("duration_ms", (time.monotonic() - started) * 1000)
        span.end()
