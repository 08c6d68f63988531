"""Tests for nudge injection and history pruning."""

from devagent.history import HEAD_TURNS, MAX_EVIDENCE_TURNS, is_evidence, prune_history
from devagent.modes import mode_for
from devagent.nudges import directive_text, inject_format_recovery, inject_nudge
from devagent.prompts import NUDGE_ACK, REJECTED_OUTPUT, format_example


def turns(n, start=0):
    return [{"role": "user" if i % 2 else "assistant", "content": f"turn {i}"}
            for i in range(start, start + n)]


class TestNudges:

    def test_nudge_is_ack_plus_directive(self):
        history = [{"role": "assistant", "content": "ACTION: read_file"}]
        inject_nudge(history, "Do something else.", 2)
        assert history[-2] == {"role": "assistant", "content": NUDGE_ACK}
        assert history[-1] == {"role": "user", "content": "[SYSTEM DIRECTIVE #2] Do something else."}

    def test_directive_text(self):
        assert directive_text(7, "Stop.") == "[SYSTEM DIRECTIVE #7] Stop."

    def test_format_recovery_replaces_garbled_turn(self):
        history = [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "task"},
            {"role": "assistant", "content": "ACTIONXXXETERS: ACTIONXXXETERS:"},
        ]
        inject_format_recovery(history, format_example(mode_for()))
        assert history[2]["content"] == REJECTED_OUTPUT
        assert history[-1]["role"] == "user"
        assert "THOUGHT:" in history[-1]["content"]
        assert "ACTION: list_files" in history[-1]["content"]
        assert all("ACTIONXXXETERS" not in t["content"] for t in history)

    def test_fast_example_has_no_thought(self):
        assert "THOUGHT:" not in format_example(mode_for(fast=True))


class TestPruneHistory:

    def test_short_history_untouched(self):
        history = turns(10)
        assert prune_history(history, max_turns=50, window=30) is history

    def test_keeps_head_and_window(self):
        history = turns(80)
        pruned = prune_history(history, max_turns=50, window=30)
        assert pruned[:HEAD_TURNS] == history[:HEAD_TURNS]
        assert pruned[-30:] == history[-30:]
        assert len(pruned) == HEAD_TURNS + 30

    def test_keeps_evidence_from_the_middle(self):
        history = turns(80)
        history[10] = {"role": "user", "content": "Previous review: [VERDICT: FAIL]"}
        history[20] = {"role": "user", "content": "[SYSTEM DIRECTIVE #1] write the report"}
        pruned = prune_history(history, max_turns=50, window=30)
        assert pruned[HEAD_TURNS] is history[10]
        assert pruned[HEAD_TURNS + 1] is history[20]
        assert len(pruned) == HEAD_TURNS + 2 + 30

    def test_evidence_is_bounded(self):
        history = turns(100)
        for i in range(5, 60):
            history[i] = {"role": "user", "content": f"REVIEW REJECTED {i}"}
        pruned = prune_history(history, max_turns=50, window=30)
        assert len(pruned) == HEAD_TURNS + MAX_EVIDENCE_TURNS + 30

    def test_is_evidence(self):
        assert is_evidence({"content": "status: READY FOR REVIEW"})
        assert is_evidence({"content": "see REPORT.md"}, extra_markers=("REPORT.md",))
        assert not is_evidence({"content": "Tool result (read_file):"})
