import pytest

pytest.importorskip("networkx")

from src.uml_studio.flow_graph import parse_flowchart, unreachable_nodes


def test_parse_flowchart_reads_nodes_edges_and_classes():
    graph = parse_flowchart(
        "flowchart LR\n"
        "a[A] & b[B] --> c{C}\n"
        "c -->|yes| d((D)):::startend\n"
        "classDef startend fill:#fff\n"
    )

    assert set(graph.nodes) == {"a", "b", "c", "d"}
    assert set(graph.edges) == {("a", "c"), ("b", "c"), ("c", "d")}
    assert graph.edges["c", "d"]["label"] == "yes"
    assert graph.nodes["c"]["shape"] == "diamond"
    assert graph.nodes["c"]["label"] == "C"
    assert graph.nodes["d"]["shape"] == "circle"
    assert graph.nodes["d"]["classes"] == ["startend"]


def test_parse_flowchart_tracks_declarations():
    graph = parse_flowchart("flowchart TD\nstartNode((Start)) --> work[Work]\nwork --> endNode")

    assert graph.nodes["startNode"]["declared"] is True
    assert graph.nodes["work"]["declared"] is True
    assert graph.nodes["endNode"]["declared"] is False
    assert graph.nodes["endNode"]["label"] == "endNode"


def test_parse_flowchart_skips_subgraphs_and_unparsed_lines():
    graph = parse_flowchart(
        "flowchart LR\n"
        "subgraph System [Shop]\n"
        "  user[User] --> browse(Browse)\n"
        "end\n"
        "[Anonymous] --> user\n"
    )

    assert set(graph.nodes) == {"user", "browse"}
    assert graph.nodes["browse"]["shape"] == "round"


def test_unreachable_nodes_from_root():
    graph = parse_flowchart("flowchart TD\nstartNode((Start)) --> a[A]\nb[B] --> c[C]")

    assert unreachable_nodes(graph, "startNode") == ["b", "c"]
    assert unreachable_nodes(graph, "missing") == []
