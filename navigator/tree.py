"""
navigator/tree.py

Navigation state machine over the content tree:

    INPUT --open_topic--> OUTLINE --open_section--> SUB_OUTLINE --open_subtopic--> NOTES
                                                                  (sub-views: notes, quiz, dive_deeper)

Every open goes through get-or-generate: memory cache, then the in-flight map
(a second request for the same scoped title joins the running generation),
then the resolution graph (store lookup, generation, persist).

Run:
    python -m navigator.tree --topic "Photosynthesis" --section "Light reactions"
"""

import asyncio
import dataclasses
import functools
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from backend.db import EntityKind, Store
from backend.errors import NavigationError, PersistenceError
from backend.prompts import ContentKind

from .quiz import QuizScore, score_quiz
from .resolution import build_resolution_graph, initial_state

logger = logging.getLogger("navigator")
logger.setLevel(logging.INFO)

OUTLINE_ACTION = "generateOutlineHTML"
DIVE_DEEPER_PROGRESS = 1


class View(str, Enum):
    INPUT = "input"
    OUTLINE = "outline"
    SUB_OUTLINE = "sub_outline"
    NOTES = "notes"


class SubView(str, Enum):
    NOTES = "notes"
    QUIZ = "quiz"
    DIVE_DEEPER = "dive_deeper"


VIEW_LEVELS = {View.INPUT: 0, View.OUTLINE: 1, View.SUB_OUTLINE: 2, View.NOTES: 3}
NODE_LEVELS = {
    EntityKind.TOPIC: 1,
    EntityKind.SUBTOPIC: 2,
    EntityKind.NOTE: 3,
    EntityKind.QUIZ: 4,
    EntityKind.DIVE_DEEPER: 4,
}


@dataclass(frozen=True)
class NodeKey:
    """Scoped title: (kind, parent id, title). The cache and in-flight key."""
    kind: EntityKind
    parent: Any
    title: Optional[str]


@dataclass
class NodeContent:
    key: NodeKey
    html: str
    entity: Optional[Dict[str, Any]] = None
    source: str = "generated"    # memory | store | generated
    durable: bool = False

    @property
    def entity_id(self) -> Optional[int]:
        return self.entity.get("id") if self.entity else None

    @property
    def title(self) -> Optional[str]:
        return self.key.title


@dataclass
class NodeRequest:
    key: NodeKey
    content_kind: ContentKind
    payload: Dict[str, Any]
    record: Dict[str, Any]
    html_field: str = "html_content"
    persist: bool = True


class NavigationController:
    """
    Holds the current path (topic, section, note), the per-session memory
    cache and the map of in-flight generations.

    `source` is anything with `stream(content_kind, payload)` yielding bytes
    (GenerationClient or RelaySource); `store` is a backend.db.Store.
    """

    def __init__(self, source, store: Store, user_id: str = "local",
                 on_delta: Optional[Callable[[NodeKey, str], None]] = None):
        self.source = source
        self.store = store
        self.user_id = user_id
        self.on_delta = on_delta
        self.cache: Dict[NodeKey, NodeContent] = {}
        self.errors: Dict[NodeKey, Exception] = {}
        self.warnings: List[str] = []
        self._pending: Dict[NodeKey, asyncio.Future] = {}
        self._waiters: Dict[asyncio.Future, int] = {}
        self._retry: Optional[Callable] = None
        self._graph = build_resolution_graph(store, source, self._emit)

        self.view = View.INPUT
        self.sub_view = SubView.NOTES
        self.topic: Optional[NodeContent] = None
        self.section: Optional[NodeContent] = None
        self.note: Optional[NodeContent] = None
        self.quiz: Optional[NodeContent] = None
        self.dive_deeper: List[NodeContent] = []

    # ---------------------------
    # Navigation
    # ---------------------------

    async def open_topic(self, title: str) -> NodeContent:
        request = self._topic_request(self._clean(title))
        content = await self._open(request, functools.partial(self.open_topic, title))
        self._set_topic(content)
        return content

    async def open_section(self, title: str) -> NodeContent:
        if self.topic is None:
            raise NavigationError("Open a topic before opening a section")
        request = self._section_request(self._clean(title))
        content = await self._open(request, functools.partial(self.open_section, title))
        self._set_section(content)
        return content

    async def open_subtopic(self, title: str) -> NodeContent:
        if self.section is None:
            raise NavigationError("Open a section before opening a subtopic")
        request = self._note_request(self._clean(title))
        content = await self._open(request, functools.partial(self.open_subtopic, title))
        self._set_note(content)
        return content

    async def ask_follow_up(self, question: str) -> NodeContent:
        if self.note is None:
            raise NavigationError("Open a subtopic before asking a follow-up question")
        request = self._dive_deeper_request(self._clean(question))
        content = await self._open(request, functools.partial(self.ask_follow_up, question))
        if content.source == "generated":
            self._raise_progress(DIVE_DEEPER_PROGRESS)
        self._set_dive_deeper(content)
        return content

    async def generate_quiz(self) -> NodeContent:
        if self.note is None:
            raise NavigationError("Open a subtopic before generating a quiz")
        content = await self._open(self._quiz_request(), self.generate_quiz)
        self._set_quiz(content)
        return content

    def show_notes(self):
        if self.view != View.NOTES:
            raise NavigationError("No notes are open")
        self.sub_view = SubView.NOTES

    def back(self) -> View:
        """Step to the parent view. Cached content stays; deeper generations are cancelled."""
        if self.view == View.NOTES:
            self.view = View.SUB_OUTLINE
            self.note = self.quiz = None
            self.dive_deeper = []
            self.sub_view = SubView.NOTES
        elif self.view == View.SUB_OUTLINE:
            self.view = View.OUTLINE
            self.section = None
        elif self.view == View.OUTLINE:
            self.view = View.INPUT
            self.topic = None
        self._cancel_deeper_than(VIEW_LEVELS[self.view] + 1)
        self._clear_failures()
        return self.view

    @property
    def current(self) -> Optional[NodeContent]:
        if self.view == View.NOTES:
            if self.sub_view == SubView.QUIZ:
                return self.quiz
            if self.sub_view == SubView.DIVE_DEEPER and self.dive_deeper:
                return self.dive_deeper[-1]
            return self.note
        if self.view == View.SUB_OUTLINE:
            return self.section
        if self.view == View.OUTLINE:
            return self.topic
        return None

    @property
    def path(self) -> List[str]:
        return [node.title for node in (self.topic, self.section, self.note) if node is not None]

    # ---------------------------
    # Cache control
    # ---------------------------

    def invalidate(self, key: NodeKey):
        self.cache.pop(key, None)

    def cancel(self, key: NodeKey) -> bool:
        task = self._pending.get(key)
        if task is None or task.done():
            return False
        logger.info(f"Cancelling generation for {key}")
        task.cancel()
        return True

    def cancel_all(self):
        for key in list(self._pending):
            self.cancel(key)

    def in_flight(self, key: NodeKey) -> bool:
        return key in self._pending

    async def regenerate(self) -> NodeContent:
        """Invalidate the node on screen and generate it again; the stored row is updated."""
        current = self.current
        if current is None:
            raise NavigationError("Nothing to regenerate")
        request = self._request_for(current)
        self.invalidate(request.key)
        content = await self._open(request, self.regenerate, force=True, existing=current.entity)
        setters = {
            EntityKind.TOPIC: self._set_topic,
            EntityKind.SUBTOPIC: self._set_section,
            EntityKind.NOTE: self._set_note,
            EntityKind.QUIZ: self._set_quiz,
            EntityKind.DIVE_DEEPER: self._set_dive_deeper,
        }
        setters[request.key.kind](content)
        return content

    async def retry(self) -> NodeContent:
        """Re-run the last open that failed."""
        if self._retry is None:
            raise NavigationError("Nothing to retry")
        operation, self._retry = self._retry, None
        return await operation()

    # ---------------------------
    # Quiz and progress
    # ---------------------------

    def submit_quiz(self, selections: Dict[int, Optional[int]]) -> QuizScore:
        if self.quiz is None:
            raise NavigationError("No quiz to submit")
        score = score_quiz(self.quiz.html, selections)
        logger.info(f"Quiz scored {score}")
        if self.quiz.entity:
            self.quiz.entity["last_score"] = score.percent
            self._save(EntityKind.QUIZ, self.quiz.entity["id"], {"last_score": score.percent})
        self._raise_progress(score.progress_increase)
        return score

    def record_study_time(self, minutes: int):
        if self.topic is None or not self.topic.entity:
            return
        total = (self.topic.entity.get("total_study_time") or 0) + max(0, int(minutes))
        self.topic.entity["total_study_time"] = total
        self._save(EntityKind.TOPIC, self.topic.entity["id"], {"total_study_time": total})

    def _raise_progress(self, increase: int):
        if self.topic is None or not self.topic.entity or increase <= 0:
            return
        current = self.topic.entity.get("progress") or 0
        progress = min(100, current + increase)
        if progress <= current:
            return
        self.topic.entity["progress"] = progress
        self._save(EntityKind.TOPIC, self.topic.entity["id"],
                   {"progress": progress, "last_accessed": datetime.utcnow()})

    def _save(self, kind: EntityKind, entity_id: int, fields: Dict[str, Any]):
        try:
            self.store.update(kind, entity_id, fields)
        except PersistenceError as e:
            logger.warning(f"Could not save {kind.value} {entity_id}: {e}")
            self.warnings.append(str(e))

    # ---------------------------
    # Requests per node kind
    # ---------------------------

    @staticmethod
    def _clean(title: str) -> str:
        title = (title or "").strip()
        if not title:
            raise NavigationError("A title is required")
        return title

    @staticmethod
    def _parent_id(node: NodeContent):
        """Stored id of the parent, or its in-memory key when it was never saved."""
        return node.entity_id if node.entity_id is not None else node.key

    def _topic_request(self, title: str) -> NodeRequest:
        return NodeRequest(
            key=NodeKey(EntityKind.TOPIC, self.user_id, title),
            content_kind=ContentKind.OUTLINE,
            payload={"action": OUTLINE_ACTION, "topic": title},
            record={"user_id": self.user_id, "title": title, "progress": 0, "last_accessed": datetime.utcnow()},
            html_field="html_outline",
        )

    def _section_request(self, title: str) -> NodeRequest:
        topic = self.topic
        return NodeRequest(
            key=NodeKey(EntityKind.SUBTOPIC, self._parent_id(topic), title),
            content_kind=ContentKind.SUB_OUTLINE,
            payload={"action": OUTLINE_ACTION, "subtopic": title, "mainTopic": topic.title},
            record={"topic_id": topic.entity_id, "title": title, "last_accessed": datetime.utcnow()},
            persist=topic.entity_id is not None,
        )

    def _note_request(self, title: str) -> NodeRequest:
        section = self.section
        return NodeRequest(
            key=NodeKey(EntityKind.NOTE, self._parent_id(section), title),
            content_kind=ContentKind.NOTES,
            payload={"title": self.topic.title, "sectionTitle": section.title, "subtopic": title},
            record={"subtopic_id": section.entity_id, "title": title},
            persist=section.entity_id is not None,
        )

    def _quiz_request(self) -> NodeRequest:
        note = self.note
        return NodeRequest(
            key=NodeKey(EntityKind.QUIZ, self._parent_id(note), None),
            content_kind=ContentKind.QUIZ,
            payload={"title": self.topic.title, "sectionTitle": self.section.title, "subtopic": note.title},
            record={"note_id": note.entity_id, "last_score": 0},
            persist=note.entity_id is not None,
        )

    def _dive_deeper_request(self, question: str) -> NodeRequest:
        note = self.note
        chain = f"Main Topic: '{self.topic.title}', Section: '{self.section.title}', Subtopic: '{note.title}'"
        return NodeRequest(
            key=NodeKey(EntityKind.DIVE_DEEPER, self._parent_id(note), question),
            content_kind=ContentKind.DIVE_DEEPER,
            payload={"topicChain": chain, "followUpQuestion": question},
            record={"note_id": note.entity_id, "question": question},
            persist=note.entity_id is not None,
        )

    def _request_for(self, node: NodeContent) -> NodeRequest:
        builders = {
            EntityKind.TOPIC: lambda: self._topic_request(node.title),
            EntityKind.SUBTOPIC: lambda: self._section_request(node.title),
            EntityKind.NOTE: lambda: self._note_request(node.title),
            EntityKind.QUIZ: self._quiz_request,
            EntityKind.DIVE_DEEPER: lambda: self._dive_deeper_request(node.title),
        }
        return builders[node.key.kind]()

    # ---------------------------
    # View updates
    # ---------------------------

    def _set_topic(self, content: NodeContent):
        self.topic = content
        self.section = self.note = self.quiz = None
        self.dive_deeper = []
        self.view = View.OUTLINE

    def _set_section(self, content: NodeContent):
        self.section = content
        self.note = self.quiz = None
        self.dive_deeper = []
        self.view = View.SUB_OUTLINE

    def _set_note(self, content: NodeContent):
        self.note = content
        self.quiz = None
        self.dive_deeper = [
            node for key, node in self.cache.items()
            if key.kind == EntityKind.DIVE_DEEPER and key.parent == self._parent_id(content)
        ]
        self.view = View.NOTES
        self.sub_view = SubView.NOTES

    def _set_quiz(self, content: NodeContent):
        self.quiz = content
        self.sub_view = SubView.QUIZ

    def _set_dive_deeper(self, content: NodeContent):
        self.dive_deeper = [node for node in self.dive_deeper if node.key != content.key] + [content]
        self.sub_view = SubView.DIVE_DEEPER

    # ---------------------------
    # Get-or-generate
    # ---------------------------

    def _emit(self, key: NodeKey, delta: str):
        if self.on_delta:
            self.on_delta(key, delta)

    def _cancel_deeper_than(self, level: int):
        for key in list(self._pending):
            if NODE_LEVELS[key.kind] > level:
                self.cancel(key)

    async def _open(self, request: NodeRequest, retry_op: Callable, force: bool = False,
                    existing: Optional[Dict[str, Any]] = None) -> NodeContent:
        try:
            content = await self._resolve(request, force=force, existing=existing)
        except Exception as e:
            logger.error(f"Could not open {request.key}: {e}")
            self.errors[request.key] = e
            self._retry = retry_op
            raise
        self._clear_failures()
        return content

    def _clear_failures(self):
        self.errors.clear()
        self._retry = None

    async def _resolve(self, request: NodeRequest, force: bool = False,
                       existing: Optional[Dict[str, Any]] = None) -> NodeContent:
        """
        Every requester waits through asyncio.shield; the generation is only
        cancelled by cancel() or when its last waiter goes away.
        """
        key = request.key
        cached = self.cache.get(key)
        if cached is not None and not force:
            return dataclasses.replace(cached, source="memory")

        task = self._pending.get(key)
        if task is not None and not task.done():
            logger.info(f"Joining in-flight generation for {key}")
        else:
            task = asyncio.ensure_future(self._generate(request, force, existing))
            self._pending[key] = task
            task.add_done_callback(functools.partial(self._forget, key))

        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        finally:
            remaining = self._waiters.pop(task) - 1
            if remaining:
                self._waiters[task] = remaining
            elif not task.done():
                logger.info(f"No one is waiting for {key}; cancelling its generation")
                task.cancel()

    def _forget(self, key: NodeKey, task: asyncio.Future):
        if self._pending.get(key) is task:
            del self._pending[key]

    async def _generate(self, request: NodeRequest, force: bool,
                        existing: Optional[Dict[str, Any]]) -> NodeContent:
        key = request.key
        reset_fields = {"last_score": 0} if key.kind == EntityKind.QUIZ else {}
        state = initial_state(
            key=key,
            entity_kind=key.kind,
            content_kind=request.content_kind,
            parent=key.parent,
            title=key.title,
            payload=request.payload,
            record=request.record,
            html_field=request.html_field,
            persist=request.persist,
            force=force,
            reset_fields=reset_fields,
            entity=existing if force else None,
        )
        final = await self._graph.ainvoke(state)
        if final.get("warning"):
            self.warnings.append(final["warning"])
        content = NodeContent(
            key=key,
            html=final["html"],
            entity=final.get("entity"),
            source=final["source"],
            durable=bool(final.get("durable")),
        )
        self.cache[key] = content
        return content


# CLI entrypoint
if __name__ == "__main__":
    import argparse

    from backend.config import load_settings
    from backend.db import init_db, make_engine

    from .client import GenerationClient, RelaySource

    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

    parser = argparse.ArgumentParser(description="Walk the study tree from the command line")
    parser.add_argument("--topic", "-t", required=True, help="Subject to study")
    parser.add_argument("--section", "-s", help="Section of the outline to open")
    parser.add_argument("--subtopic", "-n", help="Subtopic of the section to open")
    parser.add_argument("--quiz", action="store_true", help="Generate a quiz for the subtopic")
    parser.add_argument("--question", "-q", help="Follow-up question on the subtopic")
    parser.add_argument("--api", action="store_true", help="Go through the FastAPI server instead of calling the model directly")
    args = parser.parse_args()

    settings = load_settings()
    store = Store(init_db(make_engine(settings.database_url)))
    source = GenerationClient(settings.fastapi_url) if args.api else RelaySource()
    controller = NavigationController(source, store, user_id=settings.user_id)

    async def walk():
        await controller.open_topic(args.topic)
        if args.section:
            await controller.open_section(args.section)
        if args.section and args.subtopic:
            await controller.open_subtopic(args.subtopic)
            if args.quiz:
                await controller.generate_quiz()
            if args.question:
                await controller.ask_follow_up(args.question)
        return controller.current

    node = asyncio.run(walk())
    print(f"[{node.source}] {' > '.join(controller.path)}")
    print(node.html)
    for warning in controller.warnings:
        print(f"warning: {warning}")
