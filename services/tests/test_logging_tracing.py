import asyncio
import logging

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from services.common import (
    ServiceSettings,
    bind_owner,
    build_app,
    configure_logging,
    configure_tracing,
    create_engine,
    dispose_engines,
    instrument_engine,
    operation_span,
)
from services.common.tracing import _INSTRUMENTED_APPS, _INSTRUMENTED_ENGINES


@pytest.mark.usefixtures("caplog")
class TestTracingInstrumentation:
    def test_tracing_instruments_each_app_once(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = ServiceSettings(
            enable_tracing=True,
            enable_metrics=False,
            app_name="Inventory Tracing Test",
        )
        configure_logging(settings)
        caplog.set_level(logging.WARNING)
        before = len(_INSTRUMENTED_APPS)
        app = build_app(settings)
        after_first = len(_INSTRUMENTED_APPS)
        assert after_first == before + 1
        configure_tracing(app, settings)
        assert len(_INSTRUMENTED_APPS) == after_first
        assert isinstance(trace.get_tracer_provider(), TracerProvider)

    def test_engine_instrumentation_is_idempotent(self, tmp_path) -> None:
        settings = ServiceSettings(
            enable_tracing=True,
            enable_metrics=False,
            app_name="Inventory Engine Tracing Test",
        )
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'traced.db'}")
        before = len(_INSTRUMENTED_ENGINES)

        instrument_engine(engine, settings)
        instrument_engine(engine, settings)

        assert len(_INSTRUMENTED_ENGINES) == before + 1
        asyncio.run(dispose_engines())

    def test_engine_instrumentation_skipped_without_tracing(self, tmp_path) -> None:
        settings = ServiceSettings(enable_tracing=False, enable_metrics=False)
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'plain.db'}")
        before = len(_INSTRUMENTED_ENGINES)

        instrument_engine(engine, settings)

        assert len(_INSTRUMENTED_ENGINES) == before
        asyncio.run(dispose_engines())

    def test_logging_injects_trace_identifiers(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = ServiceSettings(
            enable_tracing=True,
            enable_metrics=False,
            app_name="Inventory Logging Test",
        )
        configure_logging(settings)
        build_app(settings)
        caplog.clear()
        tracer = trace.get_tracer(__name__)
        logger = logging.getLogger("inventory-trace-test")
        with caplog.at_level(logging.INFO):
            logger.info("outside span")
            with tracer.start_as_current_span("adjust-stock"):
                logger.info("inside span")

        outside_record = next(record for record in caplog.records if record.message == "outside span")
        assert getattr(outside_record, "trace_id", "-") == "-"
        inside_record = next(record for record in caplog.records if record.message == "inside span")
        assert len(getattr(inside_record, "trace_id", "-")) == 32
        assert len(getattr(inside_record, "span_id", "-")) == 16


def test_configure_logging_quiets_driver_loggers() -> None:
    configure_logging(ServiceSettings(log_level="INFO", enable_metrics=False, enable_tracing=False))

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("aiosqlite").level == logging.WARNING


def test_operation_span_records_inventory_attributes() -> None:
    build_app(ServiceSettings(enable_tracing=True, enable_metrics=False, app_name="Inventory Span Test"))
    provider = trace.get_tracer_provider()
    assert isinstance(provider, TracerProvider)
    exporter = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(exporter))

    with operation_span("adjust", owner_id=7, item_id=None):
        pass

    (span,) = exporter.get_finished_spans()
    assert span.name == "inventory.adjust"
    assert dict(span.attributes) == {"inventory.owner_id": 7}


def test_bound_owner_is_stamped_on_records(caplog: pytest.LogCaptureFixture) -> None:
    configure_logging(ServiceSettings(enable_metrics=False, enable_tracing=False))
    logger = logging.getLogger("inventory-owner-test")

    with caplog.at_level(logging.INFO):
        bind_owner(42)
        logger.info("owned")
        bind_owner(None)
        logger.info("anonymous")

    owned = next(record for record in caplog.records if record.message == "owned")
    anonymous = next(record for record in caplog.records if record.message == "anonymous")
    assert owned.owner_id == 42
    assert anonymous.owner_id == "-"
