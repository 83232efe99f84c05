from __future__ import annotations

from knowledge.classifier import classify_intent, classify_query, is_greeting_or_conversational


def test_greetings_and_small_talk() -> None:
    assert classify_query("hi") == "greeting"
    assert classify_query("hello there") == "greeting"
    assert classify_query("thanks!") == "greeting"
    assert classify_query("Hey! what's new") == "greeting"
    assert classify_query("Good morning") == "greeting"
    assert classify_query("ok, goodbye") == "greeting"


def test_greeting_prefix_needs_a_separator() -> None:
    assert not is_greeting_or_conversational("hiking trips")
    assert not is_greeting_or_conversational("yoga")


def test_project_and_personal_intents() -> None:
    assert classify_query("what projects have you built?") == "project"
    assert classify_query("where did you go to university?") == "personal"
    assert classify_query("Which HACKATHON did he win?") == "project"
    assert classify_query("Tell me about his family") == "personal"


def test_general_fallback() -> None:
    assert classify_query("what is the capital of France?") == "general"
    assert classify_query("") == "general"


def test_project_keywords_take_priority() -> None:
    # "python" is a project signal, "love" a personal one.
    assert classify_intent("does he love python") == "project"


def test_whole_word_matching_only() -> None:
    # "apple" contains "app", "ageless" contains "age".
    assert classify_intent("apple pie") == "general"
    assert classify_intent("ageless") == "general"
    assert classify_intent("the tech stack") == "project"
