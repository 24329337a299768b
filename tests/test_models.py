import pytest

from gittt.models import (
    BaseLink,
    ConfigFile,
    JiraLink,
    MultipieLink,
    Record,
    RecordType,
    domain_to_dirname,
    link_from_dict,
)


@pytest.mark.parametrize(
    ("domain", "dirname"),
    [
        ("github.com:443", "github_com_443"),
        ("gitlab.example.org:22", "gitlab_example_org_22"),
        ("localhost:8080", "localhost_8080"),
    ],
)
def test_domain_dirname_mapping(domain: str, dirname: str) -> None:
    assert domain_to_dirname(domain) == dirname


def test_domain_dirname_mapping_collides_on_underscores() -> None:
    # Documented limitation: `.` and `_` in hosts are indistinguishable on disk.
    assert domain_to_dirname("a_b.com:1") == domain_to_dirname("a.b.com:1")


def test_record_serialization_omits_unset_fields() -> None:
    record = Record(amount=0.5, end=1000)

    assert record.to_dict() == {"amount": 0.5, "end": 1000, "type": "Time"}


def test_record_from_legacy_document() -> None:
    """Verifies that records written by older clients (no type) load as time."""
    record = Record.from_dict({"amount": 2, "end": 5, "guid": "g", "message": "m"})

    assert record.type is RecordType.TIME
    assert record.guid == "g"
    assert record.created is None


def test_link_dispatch_on_link_type() -> None:
    jira = link_from_dict(
        {"projectName": "p", "linkType": "Jira", "host": "h", "endpoint": "e", "key": "K"}
    )
    multipie = link_from_dict(
        {"projectName": "p", "linkType": "Multipie", "clientSecret": "s"}
    )
    other = link_from_dict({"projectName": "p", "linkType": "Redmine", "url": "u"})

    assert isinstance(jira, JiraLink)
    assert jira.key == "K"
    assert isinstance(multipie, MultipieLink)
    assert multipie.client_secret == "s"
    assert isinstance(other, BaseLink)
    assert other.to_dict() == {"url": "u", "projectName": "p", "linkType": "Redmine"}


def test_config_file_uses_camel_case_keys() -> None:
    config = ConfigFile(
        created=1,
        git_repo="ssh://git@github.com:443/me/records.git",
        links=[JiraLink(project_name="p", host="h", endpoint="e", key="K")],
    )

    data = config.to_dict()

    assert data["gitRepo"] == "ssh://git@github.com:443/me/records.git"
    assert data["links"][0]["projectName"] == "p"
    assert data["links"][0]["linkType"] == "Jira"
    assert ConfigFile.from_dict(data) == config
