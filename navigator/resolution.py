#!/usr/bin/env python3
"""
navigator/resolution.py

Get-or-generate pipeline for one tree node, as a LangGraph StateGraph:

    START -> lookup --(found)--> END
                    +--(miss)--> generate -> persist -> END

The memory cache and the in-flight map live in the controller; this graph
only runs once both have missed.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from typing_extensions import TypedDict

from langgraph.graph import StateGraph, START, END

from backend.db import EntityKind, Store
from backend.errors import PersistenceError
from backend.prompts import ContentKind

from .annotate import annotate
from .stream_consumer import StreamConsumer, strip_code_fences

logger = logging.getLogger("navigator.resolution")
logger.setLevel(logging.INFO)

# ==================== State Definition ====================

class ResolutionState(TypedDict):
    """State passed through the resolution nodes."""
    key: Any                      # NodeKey of the node being resolved
    entity_kind: EntityKind
    content_kind: ContentKind
    parent: Any
    title: Optional[str]
    payload: Dict[str, Any]       # request body for the generation endpoint
    record: Dict[str, Any]        # fields for a fresh insert
    html_field: str
    persist: bool                 # False when the parent never reached the store
    force: bool                   # regenerate: skip lookup, update in place
    reset_fields: Dict[str, Any]
    entity: Optional[Dict[str, Any]]
    html: Optional[str]
    source: Optional[str]
    durable: bool
    warning: Optional[str]


def initial_state(**values) -> ResolutionState:
    state: ResolutionState = {
        "key": None,
        "entity_kind": EntityKind.TOPIC,
        "content_kind": ContentKind.OUTLINE,
        "parent": None,
        "title": None,
        "payload": {},
        "record": {},
        "html_field": "html_content",
        "persist": True,
        "force": False,
        "reset_fields": {},
        "entity": None,
        "html": None,
        "source": None,
        "durable": False,
        "warning": None,
    }
    state.update(values)
    return state


# ==================== Build Graph ====================

def build_resolution_graph(store: Store, source, on_delta: Optional[Callable[[Any, str], None]] = None):
    """
    Compile the lookup/generate/persist graph around a store and a content source.

    `source.stream(content_kind, payload)` must yield bytes of answer text.
    `on_delta(key, text)` receives every renderable piece while generating.
    """

    async def lookup_node(state: ResolutionState) -> Dict[str, Any]:
        if state["force"] or not state["persist"]:
            return {}
        kind, title = state["entity_kind"], state["title"]
        try:
            row = store.find_one(kind, state["parent"], title)
        except PersistenceError as e:
            logger.warning(f"[LOOKUP] {e}; generating instead")
            return {"warning": str(e)}
        if row is None or not row.get(state["html_field"]):
            logger.info(f"[LOOKUP] No stored {kind.value} for {title!r}")
            return {"entity": row}
        try:
            store.touch_last_accessed(kind, row["id"])
        except PersistenceError as e:
            logger.warning(f"[LOOKUP] Could not touch {kind.value} {row['id']}: {e}")
        logger.info(f"[LOOKUP] Serving stored {kind.value} {row['id']} for {title!r}")
        return {"entity": row, "html": row[state["html_field"]], "source": "store", "durable": True}

    def route_after_lookup(state: ResolutionState) -> str:
        return "done" if state.get("html") else "generate"

    async def generate_node(state: ResolutionState) -> Dict[str, Any]:
        kind = state["content_kind"]
        logger.info(f"[GENERATE] Streaming {kind.value} for {state['title']!r}")
        key = state["key"]

        def emit(delta: str):
            if on_delta:
                on_delta(key, delta)

        consumer = StreamConsumer(html=True)
        text = await consumer.consume(source.stream(kind, state["payload"]), emit)
        html = annotate(strip_code_fences(text), kind)
        return {"html": html, "source": "generated"}

    async def persist_node(state: ResolutionState) -> Dict[str, Any]:
        if not state["persist"]:
            return {"durable": False, "warning": f"{state['entity_kind'].value} not saved: parent is unsaved"}
        kind, field = state["entity_kind"], state["html_field"]
        existing = state.get("entity")
        try:
            if existing:
                fields = {field: state["html"], **state["reset_fields"]}
                if kind in (EntityKind.TOPIC, EntityKind.SUBTOPIC):
                    fields["last_accessed"] = datetime.utcnow()
                row = store.update(kind, existing["id"], fields)
            else:
                row = store.insert(kind, {**state["record"], field: state["html"]})
        except PersistenceError as e:
            logger.warning(f"[PERSIST] {e}; keeping unsaved result in memory")
            return {"durable": False, "warning": str(e)}
        logger.info(f"[PERSIST] Saved {kind.value} {row['id']}")
        return {"entity": row, "durable": True}

    graph = StateGraph(ResolutionState)

    graph.add_node("lookup", lookup_node)
    graph.add_node("generate", generate_node)
    graph.add_node("persist", persist_node)

    graph.add_edge(START, "lookup")
    graph.add_conditional_edges("lookup", route_after_lookup, {"generate": "generate", "done": END})
    graph.add_edge("generate", "persist")
    graph.add_edge("persist", END)

    return graph.compile()
