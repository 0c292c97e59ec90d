import logging

import pytest

from snippetbase.services.content_tree import (
    Container,
    ContentTreeError,
    EmbeddedSnippet,
    Paragraph,
    Text,
    extract_objects,
    parse_contents,
)


def test_parse_builds_node_variants():
    nodes = parse_contents(
        [
            {"type": "paragraph", "children": [{"text": "Say hello"}]},
            {"type": "snippet", "snippet": "snip_0aaaaaaaaa", "children": [{"text": ""}]},
            {"type": "bulleted-list", "children": [{"type": "list-item", "children": [{"text": "one"}]}]},
        ]
    )
    assert isinstance(nodes[0], Paragraph)
    assert nodes[0].children == [Text(text="Say hello")]
    assert isinstance(nodes[1], EmbeddedSnippet)
    assert nodes[1].static_id == "snip_0aaaaaaaaa"
    assert isinstance(nodes[2], Container)


def test_extract_dedupes_in_first_occurrence_order():
    contents = [
        {"type": "snippet", "snippet": "snip_0bbbbbbbbb"},
        {"type": "paragraph", "children": [{"type": "playbook-link", "playbook": "play_0ccccccccc", "children": []}]},
        {"type": "snippet", "snippet": "snip_0aaaaaaaaa"},
        {"type": "snippet", "snippet": "snip_0bbbbbbbbb"},
        {"type": "playbook-embed", "playbook": "play_0ccccccccc"},
    ]
    assert extract_objects(contents) == [
        ("snip_0bbbbbbbbb", "snippet"),
        ("play_0ccccccccc", "playbook_link"),
        ("snip_0aaaaaaaaa", "snippet"),
        ("play_0ccccccccc", "playbook_embed"),
    ]


def test_unknown_node_type_is_walked_as_container(caplog):
    contents = [{"type": "callout", "children": [{"type": "snippet", "snippet": "snip_0ddddddddd"}]}]
    with caplog.at_level(logging.WARNING):
        assert extract_objects(contents) == [("snip_0ddddddddd", "snippet")]
    assert "callout" in caplog.text


@pytest.mark.parametrize(
    "contents",
    [
        {"type": "paragraph"},
        ["not a node"],
        [{"type": "snippet"}],
        [{"type": "paragraph", "children": "oops"}],
        [{"children": []}],
    ],
)
def test_malformed_trees_raise(contents):
    with pytest.raises(ContentTreeError):
        extract_objects(contents)


def test_empty_contents_have_no_objects():
    assert extract_objects(None) == []
    assert extract_objects([]) == []
