from __future__ import annotations

import re
from typing import Iterable, Literal

QueryIntent = Literal["greeting", "project", "personal", "general"]

GREETINGS = frozenset(
    {
        "hi", "hello", "hey", "howdy", "greetings", "good morning", "good afternoon",
        "good evening", "sup", "wassup", "yo", "hiya",
    }
)

CONVERSATIONAL_PHRASES = (
    "how are you", "how's it going", "what's up", "how do you do",
    "nice to meet you", "pleased to meet you",
    "thanks", "thank you", "thx", "cheers",
    "bye", "goodbye", "see you", "later", "farewell",
)

PROJECT_KEYWORDS = frozenset(
    {
        # project vocabulary
        "project", "projects", "portfolio", "work on", "worked on", "work", "working on",
        # building things
        "built", "build", "building", "created", "create", "creating", "developed",
        "develop", "developing", "made", "make", "making", "designed", "design",
        "designing", "implemented", "implement", "implementing", "coded", "code",
        "coding", "programmed", "program", "programming",
        # technology
        "tech stack", "technology", "technologies", "tool", "tools", "framework",
        "frameworks", "library", "libraries", "software", "application", "app",
        "system", "platform",
        # kinds of project
        "bot", "agent", "agents", "multi-agent", "agentic", "ai system", "chatbot",
        "web app", "website", "api", "backend", "frontend",
        # competitions
        "hackathon", "hackathons", "competition", "competitions", "demo",
        "presentation", "won", "award", "awards", "prize", "winner", "winning",
        "place", "1st", "first place",
        # named projects and tools
        "wordle", "pacer", "tracer", "markus", "observability", "git", "python",
        "langchain", "langgraph", "ollama", "selenium", "google adk",
    }
)

PERSONAL_KEYWORDS = frozenset(
    {
        # birth and age
        "born", "birth", "birthday", "birthdate", "birth date", "date of birth", "dob",
        "age", "old", "how old", "when was he", "when were you",
        # location
        "from", "where", "where is", "where was", "where does", "where did",
        "live", "lives", "lived", "living", "location", "based", "resides", "residing",
        "nationality", "citizen", "country", "city", "town", "trinidad", "london",
        # education
        "education", "educated", "studied", "study", "studying", "studies",
        "university", "universities", "uni", "college", "school", "schools",
        "degree", "degrees", "graduated", "graduate", "graduation", "graduating",
        "major", "majored", "minor", "attended", "attend", "attending", "go to",
        "went to", "ucl", "imperial", "undergraduate", "postgraduate", "masters",
        "master's", "msc", "bsc", "bachelor", "phd", "student", "academic", "course",
        "courses", "class", "undergrad", "postgrad",
        # background
        "background", "history", "story", "upbringing", "childhood", "grew up",
        "raised", "early life", "youth", "young",
        # family
        "family", "families", "parent", "parents", "sibling", "siblings",
        "brother", "sister", "mother", "father", "mom", "dad", "relative", "relatives",
        # interests
        "interest", "interests", "interested", "hobby", "hobbies", "passion",
        "passionate", "like", "likes", "enjoy", "enjoys", "love", "loves", "favorite",
        "favourite", "prefer", "prefers", "fan of", "into", "keen on",
        # career
        "worked at", "work at", "working at", "works at", "employed", "employment",
        "job", "jobs", "career", "career path", "experience", "role", "position",
        "company", "companies", "employer", "accenture", "consulting", "consultant",
    }
)


def _whole_word_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    # Longest first so multi-word phrases win over their prefixes.
    alternatives = sorted((re.escape(kw) for kw in keywords), key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b", re.IGNORECASE)


_PROJECT_RE = _whole_word_pattern(PROJECT_KEYWORDS)
_PERSONAL_RE = _whole_word_pattern(PERSONAL_KEYWORDS)


def is_greeting_or_conversational(query: str) -> bool:
    text = query.lower().strip()
    if text in GREETINGS:
        return True
    if any(text.startswith(g + " ") or text.startswith(g + "!") for g in GREETINGS):
        return True
    return any(phrase in text for phrase in CONVERSATIONAL_PHRASES)


def classify_intent(query: str) -> QueryIntent:
    """Keyword intent: project signals are checked before personal ones."""
    if _PROJECT_RE.search(query):
        return "project"
    if _PERSONAL_RE.search(query):
        return "personal"
    return "general"


def classify_query(query: str) -> QueryIntent:
    if is_greeting_or_conversational(query):
        return "greeting"
    return classify_intent(query)
