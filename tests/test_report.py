import json
import re

import pytest

from deadlock_graph_mcp.parser import parse_thread_dump
from deadlock_graph_mcp.report import deadlock_highlighter, process_report, summarize

HIGHLIGHT = '[style="filled", fillcolor="indianred", fontcolor="white"]'


def node_lines(dot):
    return [line.strip() for line in dot.splitlines() if line.startswith("  ") and "->" not in line]


def edge_lines(dot):
    return [line.strip() for line in dot.splitlines() if "->" in line]


def test_three_cycle_scenario(three_cycle_dump):
    result = process_report(three_cycle_dump, include_isolated=False)

    assert result.ok, result.error_message
    assert node_lines(result.text) == [
        f'"A" {HIGHLIGHT};',
        f'"B" {HIGHLIGHT};',
        f'"C" {HIGHLIGHT};',
    ]
    assert edge_lines(result.text) == [
        '"A" -> "B" [label="com.example.L2 <0x00000000000000b2>"];',
        '"B" -> "C" [label="com.example.L3 <0x00000000000000b3>"];',
        '"C" -> "A" [label="com.example.L1 <0x00000000000000b1>"];',
    ]
    assert result.text.startswith("digraph G {\n")
    assert result.text.endswith("}\n")


def test_only_cycle_members_are_highlighted(sample_dump):
    result = process_report(sample_dump, include_isolated=True)

    assert result.ok
    highlighted = [line for line in node_lines(result.text) if "indianred" in line]
    assert highlighted == [f'"Thread-0" {HIGHLIGHT};', f'"Thread-1" {HIGHLIGHT};']
    assert '"auditor";' in node_lines(result.text)


@pytest.mark.parametrize("include_isolated", [True, False])
def test_output_is_deterministic(sample_dump, include_isolated):
    first = process_report(sample_dump, include_isolated)
    second = process_report(sample_dump, include_isolated)
    assert first.text == second.text


def test_no_edges_means_no_nodes_when_excluding_isolated(build_dump):
    dump = build_dump([("a", ["0x0000000000000001"], []), ("b", [], [])])
    result = process_report(dump, include_isolated=False)

    assert result.ok
    assert result.text == "digraph G {\n}\n"


@pytest.mark.parametrize("include_isolated", [True, False])
def test_single_thread_without_locks_has_no_edges(include_isolated):
    result = process_report('"main" #1 prio=5 tid=0x1 nid=0x1 runnable\n', include_isolated)

    assert result.ok
    assert edge_lines(result.text) == []
    assert node_lines(result.text) == (['"main";'] if include_isolated else [])


def test_node_order_follows_input_order(build_dump, cycle_of):
    result = process_report(build_dump(cycle_of(3)[::-1]))
    assert [line.split(" ")[0] for line in node_lines(result.text)] == ['"T2"', '"T1"', '"T0"']


def test_parse_failure_is_an_error_result():
    result = process_report("garbage")

    assert not result.ok
    assert result.error_code == "PARSE_ERROR"
    assert re.search(r"\boffset 0\b", result.error_message)
    assert result.text is None


@pytest.mark.parametrize("text", ["", "\n\n", "\x00\x01", '"', "\t- locked <0x1>", "Found 1 deadlock."])
def test_never_raises(text):
    result = process_report(text)
    assert result.ok or result.error_code == "PARSE_ERROR"


def test_non_string_input_is_rejected():
    result = process_report(None)  # type: ignore[arg-type]
    assert not result.ok and result.error_code == "INVALID_PARAMS"


def test_highlighter(three_cycle_dump, sample_dump_2):
    assert [a.key for a in deadlock_highlighter(parse_thread_dump(three_cycle_dump))("A")] == [
        "style",
        "fillcolor",
        "fontcolor",
    ]
    assert deadlock_highlighter(parse_thread_dump(sample_dump_2))("worker-2") == []


def test_summarize(sample_dump):
    payload = summarize(parse_thread_dump(sample_dump))

    json.dumps(payload)
    assert payload["thread_count"] == 10
    assert payload["counts"]["BLOCKED"] == 3
    assert payload["deadlocked_threads"] == ["Thread-0", "Thread-1"]
    assert payload["deadlocks"][0] == {
        "blocked": "Thread-0",
        "lock": "com.example.bank.Account <0x000000062a8e2f48>",
        "owner": "Thread-1",
    }
    assert "Deadlocked threads: Thread-0, Thread-1" in payload["summary"]


def test_summarize_empty_report():
    payload = summarize(parse_thread_dump(""))
    assert payload["summary"] == "Analyzed 0 threads. No threads parsed."
    assert payload["deadlocks"] == []
