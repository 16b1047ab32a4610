from unittest.mock import MagicMock

from opentelemetry.sdk.trace import ReadableSpan

from report_proxy.server import StreamedBodySpanFilter, app, is_body_chunk_span


def test_proxy_routes_registered():
    paths = {route.path for route in app.routes}

    assert "/ssrsproxy/{path:path}" in paths
    assert "/__ssrsreport" in paths


def test_metrics_exposed(test_client):
    response = test_client.get("/metrics")

    assert response.status_code == 200
    assert "fastapi_app_info" in response.text


class TestStreamedBodySpanFilter:
    def test_body_chunk_span_detected(self):
        chunk = ReadableSpan(
            name="GET /ssrsproxy http send",
            attributes={"asgi.event.type": "http.response.body"},
        )
        start = ReadableSpan(
            name="GET /ssrsproxy http send",
            attributes={"asgi.event.type": "http.response.start"},
        )

        assert is_body_chunk_span(chunk)
        assert not is_body_chunk_span(start)
        assert not is_body_chunk_span(ReadableSpan(name="ssrs_proxy_request"))

    def test_only_body_chunks_dropped(self):
        processor = MagicMock()
        span_filter = StreamedBodySpanFilter(processor)
        chunk = ReadableSpan(
            name="send", attributes={"asgi.event.type": "http.response.body"}
        )
        request_span = ReadableSpan(name="ssrs_proxy_request")

        span_filter.on_end(chunk)
        span_filter.on_end(request_span)

        processor.on_end.assert_called_once_with(request_span)

    def test_lifecycle_delegated(self):
        processor = MagicMock()
        processor.force_flush.return_value = True
        span_filter = StreamedBodySpanFilter(processor)

        assert span_filter.force_flush(1000) is True
        span_filter.shutdown()

        processor.force_flush.assert_called_once_with(1000)
        processor.shutdown.assert_called_once_with()
