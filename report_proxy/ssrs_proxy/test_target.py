import pytest

from report_proxy.ssrs_proxy.target import (
    TargetResolutionError,
    UpstreamTarget,
    resolve_target,
)


class TestResolveTarget:
    """Test deriving the report server from inbound proxy paths."""

    def test_report_server_path(self):
        target = resolve_target(
            "/ssrsproxy/http/reports.local/80/ReportServer/Pages/ReportViewer.aspx"
        )

        assert target == UpstreamTarget(
            scheme="http",
            host="reports.local",
            port="80",
            resource_path="/ReportServer/Pages/ReportViewer.aspx",
        )
        assert (
            target.url
            == "http://reports.local:80/ReportServer/Pages/ReportViewer.aspx"
        )

    def test_reports_portal_path(self):
        target = resolve_target("/ssrsproxy/https/bi.example.com/443/Reports/browse/")

        assert target.url == "https://bi.example.com:443/Reports/browse/"

    def test_report_server_preferred_over_reports(self):
        """A later /Reports folder must not win over the /ReportServer segment."""
        target = resolve_target(
            "/ssrsproxy/http/upstream/80/ReportServer/Reports/Sales"
        )

        assert target.resource_path == "/ReportServer/Reports/Sales"

    def test_case_insensitive_segments(self):
        target = resolve_target("/SSRSPROXY/http/upstream/8080/reportserver/Pages/x.aspx")

        assert target.host == "upstream"
        assert target.port == "8080"
        assert target.resource_path == "/reportserver/Pages/x.aspx"

    def test_query_string_preserved(self):
        target = resolve_target(
            "/ssrsproxy/http/upstream/80/ReportServer",
            "%2fSales%2fOrders&rs:Command=Render",
        )

        assert (
            target.url
            == "http://upstream:80/ReportServer?%2fSales%2fOrders&rs:Command=Render"
        )

    def test_application_root_before_mount(self):
        target = resolve_target("/editor/ssrsproxy/http/upstream/80/Reports/Pages/Folder.aspx")

        assert target.url == "http://upstream:80/Reports/Pages/Folder.aspx"

    def test_host_and_port_not_validated(self):
        target = resolve_target("/ssrsproxy/http/bad host/notaport/ReportServer/")

        assert target.url == "http://bad host:notaport/ReportServer/"

    def test_missing_report_server_segment(self):
        with pytest.raises(TargetResolutionError):
            resolve_target("/ssrsproxy/http/upstream/80/api/values")

    def test_missing_port_token(self):
        with pytest.raises(TargetResolutionError):
            resolve_target("/ssrsproxy/http/upstream/ReportServer/Pages/x.aspx")

    def test_extra_tokens_before_segment(self):
        with pytest.raises(TargetResolutionError) as exc_info:
            resolve_target("/ssrsproxy/http/upstream/80/extra/ReportServer/")

        assert "extra" in str(exc_info.value)

    def test_resolution_error_is_value_error(self):
        with pytest.raises(ValueError):
            resolve_target("/ssrsproxy/")
