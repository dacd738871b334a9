"""Tests for the bounded conversation history."""

import pytest

from server.assistant.conversation import (
    ConversationHistory,
    ConversationState,
    Role,
    Turn,
)
from server.errors import InvalidInputError


def _fill(history: ConversationHistory, pairs: int) -> None:
    for i in range(pairs):
        history.append_user(f"question {i}")
        history.append_assistant(f"answer {i}")


# ── Appending and eviction ──────────────────────────────────────

def test_new_history_is_empty():
    history = ConversationHistory()
    assert len(history) == 0
    assert history.state is ConversationState.EMPTY
    assert history.build_prompt() == ""


def test_append_moves_to_accumulating():
    history = ConversationHistory()
    history.append_user("hello")
    assert history.state is ConversationState.ACCUMULATING
    assert history.turns == [Turn(Role.USER, "hello")]


def test_length_never_exceeds_cap():
    history = ConversationHistory(max_turns=20)
    for i in range(45):
        if i % 3:
            history.append_user(f"u{i}")
        else:
            history.append_assistant(f"a{i}")
        assert len(history) <= 20


def test_full_window_drops_exactly_the_oldest_turn():
    history = ConversationHistory(max_turns=20)
    _fill(history, 10)
    before = history.turns
    assert len(before) == 20

    history.append_user("newest")

    after = history.turns
    assert after == before[1:] + [Turn(Role.USER, "newest")]


def test_eleven_pairs_evict_the_first_pair():
    history = ConversationHistory(max_turns=20)
    _fill(history, 11)

    contents = [t.content for t in history.turns]
    assert len(contents) == 20
    assert "question 0" not in contents
    assert "answer 0" not in contents
    assert contents[0] == "question 1"
    assert contents[-1] == "answer 10"


def test_odd_cap_trims_single_turns_not_pairs():
    history = ConversationHistory(max_turns=3)
    _fill(history, 2)
    assert [t.role for t in history.turns] == [Role.ASSISTANT, Role.USER, Role.ASSISTANT]


def test_invalid_cap_falls_back_to_default():
    assert ConversationHistory(max_turns="lots").max_turns == 20
    assert ConversationHistory(max_turns=0).max_turns == 1


# ── Input validation ────────────────────────────────────────────

@pytest.mark.parametrize("text", ["", "   ", "\n\t "])
def test_blank_user_text_is_rejected(text):
    history = ConversationHistory()
    history.append_user("first")

    with pytest.raises(InvalidInputError):
        history.append_user(text)

    assert len(history) == 1


def test_assistant_text_is_recorded_even_when_empty():
    history = ConversationHistory()
    history.append_assistant("")
    assert history.turns == [Turn(Role.ASSISTANT, "")]


# ── Prompt construction ─────────────────────────────────────────

def test_single_user_turn_prompt():
    history = ConversationHistory()
    history.append_user("hello")

    prompt = history.build_prompt()

    lines = [line for line in prompt.splitlines() if line]
    assert lines == ["Human: hello"]
    assert "Assistant:" not in prompt


def test_prompt_labels_and_separates_turns():
    history = ConversationHistory()
    history.append_user("What's the time?")
    history.append_assistant("It's noon.")
    history.append_user("Thanks")

    assert history.build_prompt() == (
        "Human: What's the time?\n\n"
        "Assistant: It's noon.\n\n"
        "Human: Thanks"
    )


def test_prompt_trims_trailing_whitespace():
    history = ConversationHistory()
    history.append_user("hi")
    history.append_assistant("hello there   \n")
    assert not history.build_prompt().endswith((" ", "\n"))


def test_build_prompt_is_pure():
    history = ConversationHistory()
    _fill(history, 3)
    turns_before = history.turns

    first = history.build_prompt()
    second = history.build_prompt()

    assert first == second
    assert history.turns == turns_before


# ── Reset ───────────────────────────────────────────────────────

def test_reset_clears_any_history():
    history = ConversationHistory()
    _fill(history, 15)

    history.reset()

    assert history.build_prompt() == ""
    assert history.state is ConversationState.EMPTY


def test_reset_is_idempotent():
    history = ConversationHistory()
    history.reset()
    history.reset()
    assert len(history) == 0


def test_turns_are_immutable():
    turn = Turn(Role.USER, "hello")
    with pytest.raises(AttributeError):
        turn.content = "changed"
