from __future__ import annotations

from core.catalog import (
    DEFAULT_CATEGORY,
    Developer,
    DeveloperName,
    apply_release,
    category_info,
    format_developers,
    load_projects,
    parse_developer,
)
from core.models import Release


def test_developer_entries_resolve_to_variants() -> None:
    assert parse_developer("Ann") == DeveloperName("Ann")
    assert parse_developer({"name": "Bo", "link": "https://example.test/bo", "username": " "}) == Developer(
        name="Bo", link="https://example.test/bo"
    )
    assert parse_developer({"link": "https://example.test"}) is None
    assert parse_developer("   ") is None
    assert parse_developer(42) is None


def test_load_projects_skips_invalid_entries() -> None:
    document = {
        "third_party_clients": [
            {
                "id": "client",
                "name": "Client",
                "repo": "https://github.com/example/client",
                "developers": ["Ann", {"name": "Bo"}, 7],
                "lastRelease": {"tag": "v2"},
            },
            {"name": "missing id"},
        ],
        "services": [{"id": "svc", "name": "Service", "statusUrl": "https://status.example.test"}],
        "version": 3,
    }

    projects = load_projects(document)

    assert [project.id for project in projects] == ["client", "svc"]
    client, service = projects
    assert client.developers == (DeveloperName("Ann"), Developer(name="Bo"))
    assert client.last_release_tag == "v2"
    assert service.repo is None
    assert service.status_url == "https://status.example.test"
    assert load_projects(["not", "a", "catalog"]) == []


def test_format_developers_links_only_when_known() -> None:
    developers = (DeveloperName("Ann"), Developer(name="Bo", link="https://example.test/bo"), Developer(name="Cy"))

    assert format_developers(developers) == "Ann, [Bo](https://example.test/bo), Cy"


def test_apply_release_updates_raw_entry() -> None:
    document = {"plugins": [{"id": "one", "name": "One", "repo": "https://github.com/example/one"}]}
    project = load_projects(document)[0]
    release = Release(tag="v1", url="https://example.test/v1", published_at="2024-01-01T00:00:00Z")

    assert apply_release(document, project, release, "2024-01-02T00:00:00+00:00")
    assert document["plugins"][0]["lastRelease"] == {
        "tag": "v1",
        "url": "https://example.test/v1",
        "published_at": "2024-01-01T00:00:00Z",
    }
    assert document["plugins"][0]["lastChecked"] == "2024-01-02T00:00:00+00:00"
    assert not apply_release({"plugins": []}, project, release, "now")


def test_unknown_category_uses_default_info() -> None:
    assert category_info("themes") == DEFAULT_CATEGORY
    assert category_info("plugins").label == "Plugin"
