#!/usr/bin/env python3
"""
Test pairing tool invocations with their results
"""

from app.correlation import UNKNOWN_TOOL, ToolCategory, categorize_tool

SESSION = "s1"


def test_result_is_paired_with_pending_invocation(correlation):
    use = correlation.begin(SESSION, "t1", "Read", {"path": "a.txt"})
    results = correlation.complete(SESSION, "t1", "file body")

    assert use.id == "tool-use-t1"
    assert len(results) == 1
    result = results[0]
    assert result.id == "tool-result-t1"
    assert result.tool_name == "Read"
    assert result.tool_input == {"path": "a.txt"}
    assert result.tool_result == "file body"
    assert not correlation.is_pending(SESSION, "t1")


def test_result_without_pending_invocation_is_unknown_tool(correlation):
    results = correlation.complete(SESSION, "t404", "orphan")

    assert results[0].tool_name == UNKNOWN_TOOL
    assert results[0].tool_result == "orphan"


def test_result_without_id_matches_oldest_pending_of_same_name(correlation):
    correlation.begin(SESSION, "t1", "Grep", {"q": "a"})
    correlation.begin(SESSION, "t2", "Read", {})
    correlation.begin(SESSION, "t3", "Grep", {"q": "b"})

    results = correlation.complete(SESSION, None, "matches", tool_name="Grep")

    assert results[0].tool_id == "t1"
    assert [i.invocation_id for i in correlation.pending(SESSION)] == ["t2", "t3"]


def test_duplicate_result_keeps_tool_name(correlation):
    correlation.begin(SESSION, "t1", "Bash", {"command": "ls"})
    first = correlation.complete(SESSION, "t1", "a b")
    second = correlation.complete(SESSION, "t1", "a b")

    assert first[0].id == second[0].id
    assert second[0].tool_name == "Bash"
    assert correlation.pending(SESSION) == []


def test_duplicate_tool_use_overwrites_pending_record(correlation):
    correlation.begin(SESSION, "t1", "Read", {"path": "a"})
    correlation.begin(SESSION, "t1", "Read", {"path": "b"})

    assert len(correlation.pending(SESSION)) == 1
    assert correlation.pending(SESSION)[0].input == {"path": "b"}


def test_error_result_carries_error_text(correlation):
    correlation.begin(SESSION, "t1", "Bash", {})
    results = correlation.complete(
        SESSION, "t1", [{"type": "text", "text": "permission denied"}], is_error=True
    )

    assert results[0].is_error
    assert results[0].error == "permission denied"


def test_todo_tool_adds_todo_message(correlation):
    todos = [{"content": "write tests", "status": "in_progress"}]
    correlation.begin(SESSION, "t7", "TodoWrite", {"todos": todos})

    results = correlation.complete(SESSION, "t7", "ok")

    assert [message.id for message in results] == ["tool-result-t7", "todo-t7"]
    assert results[1].tool_input == {"todos": todos}
    assert results[1].tool_result == "Todo list updated successfully"


def test_categorize_tool_is_case_insensitive():
    assert categorize_tool("todowrite") == ToolCategory.TODO
    assert categorize_tool("TodoWrite") == ToolCategory.TODO
    assert categorize_tool("Read") == ToolCategory.GENERAL
    assert categorize_tool(None) == ToolCategory.GENERAL


def test_sessions_are_isolated(correlation):
    correlation.begin("a", "t1", "Read", {})

    results = correlation.complete("b", "t1", "x")

    assert results[0].tool_name == UNKNOWN_TOOL
    assert correlation.is_pending("a", "t1")


def test_clear_drops_pending_invocations(correlation):
    correlation.begin(SESSION, "t1", "Read", {})
    correlation.begin(SESSION, "t2", "Read", {})

    assert correlation.clear(SESSION) == 2
    assert correlation.pending(SESSION) == []
    assert correlation.clear(SESSION) == 0


def test_completed_history_is_bounded(correlation):
    for index in range(20):
        correlation.begin(SESSION, f"t{index}", "Read", {})
        correlation.complete(SESSION, f"t{index}", "x")

    # t0 fell out of the 8-entry history; t19 is still remembered
    assert correlation.complete(SESSION, "t0", "x")[0].tool_name == UNKNOWN_TOOL
    assert correlation.complete(SESSION, "t19", "x")[0].tool_name == "Read"


def test_tool_use_after_its_result_is_not_tracked(correlation):
    correlation.complete(SESSION, "k", "early output")

    use = correlation.begin(SESSION, "k", "Bash", {"command": "ls"})

    assert use.id == "tool-use-k"
    assert correlation.is_completed(SESSION, "k")
    assert correlation.pending(SESSION) == []


def test_redelivered_tool_use_after_result_is_not_tracked(correlation):
    correlation.begin(SESSION, "t1", "Bash", {"command": "ls"})
    correlation.complete(SESSION, "t1", "a b")

    correlation.begin(SESSION, "t1", "Bash", {"command": "ls"})

    assert correlation.pending(SESSION) == []


def test_settle_closes_unanswered_invocations(correlation):
    correlation.begin(SESSION, "t1", "Read", {"path": "a"})
    correlation.begin(SESSION, "t2", "Grep", {})

    assert correlation.settle(SESSION) == 2
    assert correlation.pending(SESSION) == []
    assert correlation.settle(SESSION) == 0

    late = correlation.complete(SESSION, "t1", "body")
    assert late[0].tool_name == "Read"
    assert late[0].tool_input == {"path": "a"}
