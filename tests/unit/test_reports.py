"""Tests for query counts and the HTML query report."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

import httpx
import pytest

from bugreport.models import Issue
from bugreport.query import Label, MultiRepo, Untriaged, UntriagedLabels, parse_query
from bugreport.report_config import Alert, NamedQuery, ReportConfig
from bugreport.reports import CountLink, QueryReport, get_query_count
from bugreport.repository import RepositoryRegistry
from tests.conftest import COREFX, COREFXLAB, make_issue


def _query_param(url: str | None) -> str:
    assert url is not None
    return httpx.URL(url).params["q"]


class TestGetQueryCount:
    """Tests for get_query_count function."""

    def test_link_per_repository(
        self, issues: list[Issue], registry: RepositoryRegistry
    ) -> None:
        query = parse_query("label:bug")
        count = get_query_count(query, query.filter(issues), registry)

        assert count.total == 3
        assert [(link.count, link.description) for link in count.links] == [
            (2, "[corefx] label:bug"),
            (1, "[dotnet/corefxlab] label:bug"),
        ]
        assert _query_param(count.links[0].url) == 'label:"bug"'
        assert httpx.URL(count.links[1].url or "").path == "/dotnet/corefxlab/issues"

    def test_or_is_split_into_links(
        self, issues: list[Issue], registry: RepositoryRegistry
    ) -> None:
        query = parse_query("label:bug OR label:question")
        matching = [issue for issue in query.filter(issues) if issue.repository == COREFX]
        count = get_query_count(query, matching, registry)

        assert count.total == 3
        assert [link.count for link in count.links] == [2, 1]
        assert [_query_param(link.url) for link in count.links] == [
            'label:"bug"',
            'label:"question"',
        ]

    def test_too_many_links_are_dropped(
        self, issues: list[Issue], registry: RepositoryRegistry
    ) -> None:
        query = parse_query("label:bug")
        count = get_query_count(query, query.filter(issues), registry, links_max=1)
        assert count.total == 3
        assert count.links == ()

    def test_untranslatable_part_links_issue_numbers(
        self, issues: list[Issue], registry: RepositoryRegistry
    ) -> None:
        query = parse_query('label:"area-.*"')
        count = get_query_count(query, query.filter(issues), registry)
        (link,) = count.links
        assert link.count == 2
        assert link.description == '[corefx] label:"area-.*"'
        assert _query_param(link.url) == "1 2"

    def test_untranslatable_part_without_issues_has_no_url(
        self, issues: list[Issue], registry: RepositoryRegistry
    ) -> None:
        query = parse_query('label:"zzz-.*" OR label:bug')
        matching = [issue for issue in query.filter(issues) if issue.repository == COREFX]
        count = get_query_count(query, matching, registry)

        assert sorted((link.count, link.url is None) for link in count.links) == [
            (0, True),
            (2, False),
        ]

    def test_multi_repo_skips_false_default(
        self, issues: list[Issue], registry: RepositoryRegistry
    ) -> None:
        query = MultiRepo({COREFXLAB: Label("bug")})
        count = get_query_count(query, issues, registry)
        assert count.total == 6
        assert count.links == (
            CountLink(
                1,
                "[dotnet/corefxlab] label:bug",
                COREFXLAB.query_url('label:"bug"'),
            ),
        )

    def test_multi_repo_uses_default(
        self, issues: list[Issue], registry: RepositoryRegistry
    ) -> None:
        query = MultiRepo({COREFXLAB: Label("bug")}, default=Label("question"))
        count = get_query_count(query, query.filter(issues), registry)
        assert [link.description for link in count.links] == [
            "[corefx] label:question",
            "[dotnet/corefxlab] label:bug",
        ]

    def test_no_issues_links_first_repository(self, registry: RepositoryRegistry) -> None:
        count = get_query_count(parse_query("label:bug"), [], registry)
        assert count.total == 0
        assert [link.description for link in count.links] == ["[corefx] label:bug"]

    def test_empty_registry_has_no_links(self) -> None:
        count = get_query_count(parse_query("label:bug"), [], RepositoryRegistry())
        assert count.total == 0
        assert count.links == ()


@pytest.fixture
def report_config(registry: RepositoryRegistry) -> ReportConfig:
    return ReportConfig(
        registry=registry,
        alerts=(Alert("Networking", parse_query("label:area-System.Net"), owners=("karelz",)),),
        query_reports=(
            NamedQuery("Bugs", parse_query("label:bug is:open")),
            NamedQuery("Typos", parse_query("label:area-Sytem.IO")),
        ),
    )


class TestQueryReport:
    """Tests for QueryReport."""

    def test_evaluate(self, report_config: ReportConfig, issues: list[Issue]) -> None:
        results = QueryReport(report_config).evaluate(issues)

        assert [result.name for result in results] == ["Networking", "Bugs", "Typos"]
        networking, bugs, typos = results
        assert [issue.number for issue in networking.issues] == [1]
        assert networking.owners == ("karelz",)
        assert [issue.number for issue in bugs.issues] == [1, 5]
        assert bugs.owners == ()
        assert bugs.count.total == 2
        assert typos.issues == ()
        assert typos.warnings == ("Label does not exist: area-Sytem.IO",)

    def test_warnings_carry_query_name(
        self,
        report_config: ReportConfig,
        issues: list[Issue],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="bugreport"):
            QueryReport(report_config).evaluate(issues)

        (record,) = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert record.query_name == "Typos"  # type: ignore[attr-defined]
        assert "Label does not exist: area-Sytem.IO" in record.getMessage()

    def test_render(self, report_config: ReportConfig, issues: list[Issue]) -> None:
        html = QueryReport(report_config).render(
            issues, generated_at=datetime(2017, 3, 1, 12, 30, tzinfo=UTC)
        )

        assert "Generated 2017-03-01 12:30 UTC" in html
        assert "<h2>Networking</h2>" in html
        assert "Owners: karelz" in html
        assert '<p class="warning">Label does not exist: area-Sytem.IO</p>' in html
        assert '<a href="https://github.com/dotnet/corefx/issues/1">corefx#1</a>' in html
        assert '<a href="https://github.com/dotnet/corefxlab/issues/5">dotnet/corefxlab#5</a>' in html
        assert "Labels: bug, area-System.Net" in html

    def test_render_escapes_titles(self, registry: RepositoryRegistry) -> None:
        config = ReportConfig(registry=registry, query_reports=(NamedQuery("All", parse_query("is:open")),))
        issue = make_issue(1, title="<script>alert(1)</script>")

        html = QueryReport(config).render([issue])

        assert "<script>" not in html
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html

    def test_single_link_count(self, registry: RepositoryRegistry) -> None:
        config = ReportConfig(registry=registry, query_reports=(NamedQuery("Bugs", parse_query("label:bug")),))

        html = QueryReport(config).render([make_issue(1, labels=("bug",))])

        assert 'title="[corefx] label:bug">1</a>' in html

    def test_too_many_links_show_total(
        self, report_config: ReportConfig, issues: list[Issue]
    ) -> None:
        html = QueryReport(report_config, links_max=1).render(issues)
        assert "<small>" not in html

    def test_write_creates_directories(
        self, report_config: ReportConfig, issues: list[Issue], tmp_path: Path
    ) -> None:
        output = tmp_path / "out" / "report.html"
        QueryReport(report_config).write(issues, output)
        assert output.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")

    def test_custom_templates_dir(
        self, report_config: ReportConfig, issues: list[Issue], tmp_path: Path
    ) -> None:
        (tmp_path / "query_report.html").write_text(
            "{% for result in results %}{{ result.name }}={{ result.count.total }};{% endfor %}",
            encoding="utf-8",
        )
        html = QueryReport(report_config, templates_dir=tmp_path).render(issues)
        assert html == "Networking=1;Bugs=2;Typos=0;"

    def test_untriaged_reasons(self, registry: RepositoryRegistry, issues: list[Issue]) -> None:
        labels = UntriagedLabels(
            area=frozenset({"area-System.Net", "area-System.IO"}),
            issue_type=frozenset({"bug", "enhancement"}),
            untriaged=frozenset({"untriaged"}),
        )
        query = parse_query("is:untriaged is:open", {"untriaged": Untriaged(labels)})
        config = ReportConfig(
            registry=registry,
            untriaged_labels=labels,
            query_reports=(
                NamedQuery("Untriaged", query),
                NamedQuery("Bugs", parse_query("label:bug")),
            ),
        )
        report = QueryReport(config)

        untriaged, bugs = report.evaluate(issues)
        assert [issue.number for issue in untriaged.issues] == [4, 5, 6]
        assert untriaged.reasons == (
            ("no milestone", "no area label", "no issue type label"),
            ("untriaged label", "no milestone", "no area label"),
            ("no area label", "no issue type label"),
        )
        assert bugs.reasons == ()

        html = report.render(issues)
        assert html.count("<th>Untriaged Reasons</th>") == 1
        assert "<td>untriaged label, no milestone, no area label</td>" in html
