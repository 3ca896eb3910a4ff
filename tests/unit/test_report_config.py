"""Tests for loading YAML report configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from bugreport.query import (
    FALSE,
    And,
    IsOpen,
    Label,
    MultiRepo,
    Not,
    QueryParseError,
    Untriaged,
)
from bugreport.report_config import (
    Alert,
    NamedQuery,
    RepoQuery,
    ReportConfig,
    ReportConfigError,
    build_query,
    load_report_config,
)
from bugreport.repository import RepositoryRegistry
from tests.conftest import COREFX, COREFXLAB

FULL_CONFIG = """\
repositories:
  - name: dotnet/corefx
    alias: corefx
    filter_query: "-label:archived"
  - name: dotnet/corefxlab
labels:
  area: [area-System.Net, area-System.IO]
  issue_type: [bug, enhancement]
  untriaged: [untriaged]
  aliases:
    System.Net: area-System.Net
milestones:
  aliases:
    "2.0": "2.0.0"
alerts:
  - name: Networking untriaged
    owners: [karelz]
    cc: [davidsh]
    queries:
      - "label:area-System.Net is:untriaged"
query_reports:
  - name: Open bugs
    queries:
      - repo: dotnet/corefx
        query: "label:bug is:open"
      - repo: dotnet/corefxlab
        query: "label:bug"
"""


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


class TestBuildQuery:
    """Tests for build_query function."""

    def test_single_query_without_repo(self, registry: RepositoryRegistry) -> None:
        assert build_query([RepoQuery("label:bug")], registry) == Label("bug")

    def test_single_query_with_repo(self, registry: RepositoryRegistry) -> None:
        expr = build_query([RepoQuery("label:bug", "dotnet/corefx")], registry)
        assert expr == MultiRepo({COREFX: Label("bug")})

    def test_multiple_queries_with_default(self, registry: RepositoryRegistry) -> None:
        expr = build_query(
            [RepoQuery("label:a", "dotnet/corefxlab"), RepoQuery("label:b")], registry
        )
        assert expr == MultiRepo({COREFXLAB: Label("a")}, default=Label("b"))

    def test_registers_new_repositories(self) -> None:
        registry = RepositoryRegistry()
        build_query([RepoQuery("is:open", "dotnet/roslyn")], registry)
        assert registry.get("dotnet/roslyn") is not None

    def test_empty(self, registry: RepositoryRegistry) -> None:
        with pytest.raises(ValueError, match="Expected at least 1 query"):
            build_query([], registry)

    def test_parse_error_propagates(self, registry: RepositoryRegistry) -> None:
        with pytest.raises(QueryParseError):
            build_query([RepoQuery("label:")], registry)


class TestLoadReportConfig:
    """Tests for load_report_config function."""

    def test_full_config(self, tmp_path: Path) -> None:
        config = load_report_config([_write(tmp_path / "config.yaml", FULL_CONFIG)])

        assert [repo.repo_name for repo in config.registry] == [
            "dotnet/corefx",
            "dotnet/corefxlab",
        ]
        corefx = config.registry.get("dotnet/corefx")
        assert corefx is not None
        assert corefx.alias == "corefx"
        assert corefx.filter_query == Not(Label("archived"))

        assert config.untriaged_labels.issue_type == frozenset({"bug", "enhancement"})
        assert config.label_aliases == {"System.Net": "area-System.Net"}
        assert config.milestone_aliases == {"2.0": "2.0.0"}

        (alert,) = config.alerts
        assert alert.name == "Networking untriaged"
        assert alert.owners == ("karelz",)
        assert alert.cc == ("davidsh",)
        assert alert.query == And(
            [Label("area-System.Net"), Untriaged(config.untriaged_labels)]
        )

        (report,) = config.query_reports
        assert report == NamedQuery(
            "Open bugs",
            MultiRepo({COREFX: And([Label("bug"), IsOpen(True)]), COREFXLAB: Label("bug")}),
        )
        assert config.named_queries == (alert, report)

    def test_empty_file(self, tmp_path: Path) -> None:
        config = load_report_config([_write(tmp_path / "empty.yaml", "")])
        assert len(config.registry) == 0
        assert config.named_queries == ()

    def test_includes_are_read_first(self, tmp_path: Path) -> None:
        (tmp_path / "shared").mkdir()
        _write(
            tmp_path / "shared" / "repos.yaml",
            "repositories:\n  - name: dotnet/corefxlab\n",
        )
        main = _write(
            tmp_path / "main.yaml",
            "include: [shared/repos.yaml]\nrepositories:\n  - name: dotnet/corefx\n",
        )
        config = load_report_config([main])
        assert list(config.registry) == [COREFXLAB, COREFX]

    def test_shared_include_read_once(self, tmp_path: Path) -> None:
        _write(tmp_path / "common.yaml", "repositories:\n  - name: dotnet/corefx\n")
        first = _write(tmp_path / "a.yaml", "include: [common.yaml]\n")
        second = _write(tmp_path / "b.yaml", "include: [common.yaml]\n")
        config = load_report_config([first, second])
        assert len(config.registry) == 1

    def test_circular_include(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.yaml", "include: [b.yaml]\n")
        _write(tmp_path / "b.yaml", "include: [a.yaml]\n")
        with pytest.raises(ReportConfigError, match="Circular include"):
            load_report_config([tmp_path / "a.yaml"])

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ReportConfigError, match="Configuration file not found"):
            load_report_config([tmp_path / "missing.yaml"])

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "bad.yaml", "alerts: [\n")
        with pytest.raises(ReportConfigError, match="Invalid YAML"):
            load_report_config([path])

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "list.yaml", "- a\n- b\n")
        with pytest.raises(ReportConfigError, match="must contain a mapping"):
            load_report_config([path])

    def test_invalid_query_names_alert(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "config.yaml",
            "alerts:\n  - name: Broken\n    owners: [me]\n    queries: ['label:a ||']\n",
        )
        with pytest.raises(
            ReportConfigError,
            match="Invalid query in alert 'Broken': Expression expected after OR operator",
        ) as exc_info:
            load_report_config([path])
        assert isinstance(exc_info.value.__cause__, QueryParseError)

    def test_duplicate_repo_query(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "config.yaml",
            "query_reports:\n"
            "  - name: Twice\n"
            "    queries:\n"
            "      - {repo: dotnet/corefx, query: 'label:a'}\n"
            "      - {repo: dotnet/CoreFX, query: 'label:b'}\n",
        )
        with pytest.raises(
            ReportConfigError, match="Invalid query report 'Twice': Duplicate query for repo"
        ):
            load_report_config([path])

    def test_duplicate_default_query(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "config.yaml",
            "query_reports:\n  - name: Twice\n    queries: ['label:a', 'label:b']\n",
        )
        with pytest.raises(ReportConfigError, match="Duplicate default query"):
            load_report_config([path])

    def test_query_without_queries(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config.yaml", "query_reports:\n  - name: Nothing\n")
        with pytest.raises(ReportConfigError, match="Expected at least 1 query"):
            load_report_config([path])

    def test_alert_repo_is_inherited(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "config.yaml",
            "alerts:\n"
            "  - name: Lab\n"
            "    owners: [me]\n"
            "    repo: dotnet/corefxlab\n"
            "    queries: ['is:open']\n",
        )
        (alert,) = load_report_config([path]).alerts
        assert alert.query == MultiRepo({COREFXLAB: IsOpen(True)}, default=FALSE)

    def test_cc_requires_owner(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "config.yaml",
            "alerts:\n  - name: Orphan\n    cc: [someone]\n    queries: ['is:open']\n",
        )
        with pytest.raises(ReportConfigError, match="Missing owner in alert 'Orphan'"):
            load_report_config([path])

    def test_alert_without_name(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config.yaml", "alerts:\n  - queries: ['is:open']\n")
        with pytest.raises(ReportConfigError, match="Each alert must have a 'name' field"):
            load_report_config([path])

    def test_duplicate_repository(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "config.yaml",
            "repositories:\n  - name: dotnet/corefx\n  - name: DotNet/CoreFx\n",
        )
        with pytest.raises(ReportConfigError, match="defined more than once"):
            load_report_config([path])

    def test_invalid_repository_name(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config.yaml", "repositories:\n  - name: corefx\n")
        with pytest.raises(ReportConfigError, match="Invalid repository name format"):
            load_report_config([path])

    def test_invalid_filter_query(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "config.yaml",
            "repositories:\n  - name: dotnet/corefx\n    filter_query: 'label:a &&'\n",
        )
        with pytest.raises(
            ReportConfigError, match="Invalid filter query in repository 'dotnet/corefx'"
        ):
            load_report_config([path])

    def test_duplicate_alias_across_files(self, tmp_path: Path) -> None:
        first = _write(tmp_path / "a.yaml", "labels:\n  aliases:\n    net: area-System.Net\n")
        second = _write(tmp_path / "b.yaml", "labels:\n  aliases:\n    net: area-Net\n")
        with pytest.raises(ReportConfigError, match="Label alias 'net' defined more than once"):
            load_report_config([first, second])

    def test_section_type_errors(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config.yaml", "alerts: {name: x}\n")
        with pytest.raises(ReportConfigError, match="'alerts' must be a list"):
            load_report_config([path])

    def test_label_list_type_errors(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config.yaml", "labels:\n  area: [1, 2]\n")
        with pytest.raises(ReportConfigError, match="labels.area must be a list of non-empty strings"):
            load_report_config([path])


class TestReportConfig:
    """Tests for ReportConfig helpers."""

    def test_parse_query_knows_untriaged(self) -> None:
        config = ReportConfig(registry=RepositoryRegistry())
        assert isinstance(config.parse_query("is:untriaged"), Untriaged)

    def test_alert_is_named_query(self) -> None:
        alert = Alert("name", Label("a"), owners=("me",))
        assert isinstance(alert, NamedQuery)
        assert alert.cc == ()
