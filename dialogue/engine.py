from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from dialogue.analytics import LoggedMessage, TurnLog, context_word_count, new_turn_id, word_count
from dialogue.context_store import SessionContextStore
from dialogue.sink import AnalyticsSink
from knowledge.llm_client import OllamaClient
from knowledge.models import ChatMessage, RetrievalResult
from knowledge.retriever import KnowledgeRetriever, format_for_context

logger = logging.getLogger(__name__)


class TurnState(TypedDict, total=False):
    session_id: str
    user_text: str
    turn_id: str
    intent: str
    results: list[RetrievalResult]
    retrieval_latency_ms: int
    retrieved_at: int
    context_text: str
    user_at: int
    messages: list[ChatMessage]
    reply: str
    latency_ms: int
    assistant_at: int


@dataclass(slots=True)
class TurnResult:
    text: str
    turn_id: str
    intent: str
    latency_ms: int
    retrieval_latency_ms: int
    context_word_count: int
    sources: list[str] = field(default_factory=list)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatEngine:
    """One inference turn: retrieve, record the user message, compose, generate, record the reply.

    Retrieval runs before the user message touches the window, so a failed
    embedding call leaves the session exactly as it was. A failed chat call
    leaves the user message in place and appends no reply.
    """

    def __init__(
        self,
        contexts: SessionContextStore,
        retriever: KnowledgeRetriever,
        llm: OllamaClient,
        sink: AnalyticsSink | None = None,
    ) -> None:
        self.contexts = contexts
        self.retriever = retriever
        self.llm = llm
        self.sink = sink
        self.graph = self._build_graph()

    def _build_graph(self):
        builder = StateGraph(TurnState)
        builder.add_node("retrieve", self._node_retrieve)
        builder.add_node("record_user", self._node_record_user)
        builder.add_node("compose", self._node_compose)
        builder.add_node("generate", self._node_generate)
        builder.add_node("record_reply", self._node_record_reply)

        builder.add_edge(START, "retrieve")
        builder.add_edge("retrieve", "record_user")
        builder.add_edge("record_user", "compose")
        builder.add_edge("compose", "generate")
        builder.add_edge("generate", "record_reply")
        builder.add_edge("record_reply", END)
        return builder.compile()

    async def chat(self, session_id: str, user_text: str) -> TurnResult:
        initial_state: TurnState = {
            "session_id": session_id,
            "user_text": user_text,
            "turn_id": new_turn_id(),
        }
        final_state = await self.graph.ainvoke(initial_state)
        results = final_state.get("results", [])
        return TurnResult(
            text=str(final_state.get("reply", "")),
            turn_id=str(final_state["turn_id"]),
            intent=str(final_state.get("intent", "general")),
            latency_ms=int(final_state.get("latency_ms", 0)),
            retrieval_latency_ms=int(final_state.get("retrieval_latency_ms", 0)),
            context_word_count=context_word_count(final_state.get("messages", [])),
            sources=[result.chunk.source_file for result in results],
        )

    def reset(self, session_id: str) -> None:
        self.contexts.reset(session_id)

    async def _node_retrieve(self, state: TurnState) -> TurnState:
        outcome = await self.retriever.retrieve_with_details(state["user_text"])
        return {
            "intent": outcome.intent,
            "results": outcome.results,
            "retrieval_latency_ms": outcome.latency_ms,
            "retrieved_at": _now_ms(),
            "context_text": format_for_context(outcome.results),
        }

    async def _node_record_user(self, state: TurnState) -> TurnState:
        message = self.contexts.append_user(state["session_id"], state["user_text"])
        return {"user_at": message.timestamp_ms}

    async def _node_compose(self, state: TurnState) -> TurnState:
        messages = self.contexts.compose_for_inference(
            state["session_id"],
            state.get("context_text", ""),
        )
        return {"messages": messages}

    async def _node_generate(self, state: TurnState) -> TurnState:
        started = time.perf_counter()
        reply = await self.llm.chat(state["messages"])
        latency_ms = int(round((time.perf_counter() - started) * 1000))
        logger.info(
            "Session %s turn %s answered in %dms (intent=%s, chunks=%d)",
            state["session_id"],
            state["turn_id"],
            latency_ms,
            state.get("intent", ""),
            len(state.get("results", [])),
        )
        return {"reply": reply, "latency_ms": latency_ms}

    async def _node_record_reply(self, state: TurnState) -> TurnState:
        message = self.contexts.append_assistant(state["session_id"], state["reply"])
        if self.sink is not None:
            self._log_turn(self.sink, state, message)
        return {"assistant_at": message.timestamp_ms}

    def _log_turn(self, sink: AnalyticsSink, state: TurnState, reply: ChatMessage) -> None:
        session_id = state["session_id"]
        results = state.get("results", [])
        sink.insert_retrieval_log(
            session_id,
            state["turn_id"],
            state["user_text"],
            len(results),
            int(state.get("retrieval_latency_ms", 0)),
            state.get("intent"),
            int(state.get("retrieved_at", reply.timestamp_ms)),
        )
        turn = TurnLog(
            session_id=session_id,
            turn_id=state["turn_id"],
            user=LoggedMessage(
                role="user",
                content=state["user_text"],
                at=int(state.get("user_at", reply.timestamp_ms)),
                word_count=word_count(state["user_text"]),
            ),
            assistant=LoggedMessage(
                role="assistant",
                content=reply.content,
                at=reply.timestamp_ms,
                word_count=word_count(reply.content),
            ),
            latency_ms=int(state.get("latency_ms", 0)),
            context_word_count=context_word_count(state.get("messages", [])),
        )
        sink.insert_turn_log(turn.to_row())


def describe_turn(result: TurnResult) -> dict[str, Any]:
    return {
        "turn_id": result.turn_id,
        "intent": result.intent,
        "sources": result.sources,
        "latency_ms": result.latency_ms,
        "retrieval_latency_ms": result.retrieval_latency_ms,
        "context_word_count": result.context_word_count,
    }
