import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError

from research_qa.config.settings import Settings
from research_qa.data.database import DatabaseManager, SQLPaperLibrary, SQLPersistence
from research_qa.exceptions import ConfigurationError, InvalidQuestionError, NotFoundError, PersistenceError
from research_qa.lifecycle import AnswerLifecycleManager
from research_qa.llm import LLMEvidenceExtractor, Synthesizer
from research_qa.logging_config import init_logging
from research_qa.models import Paper, QuestionStatus
from research_qa.questions import QuestionService
from research_qa.validation.language import LanguageValidator

logger = structlog.get_logger()


class App:
    """Wires the default collaborators from settings"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.db = DatabaseManager.from_settings(settings)
        self.db.create_tables()
        self.library = SQLPaperLibrary(self.db)
        self.persistence = SQLPersistence(self.db)
        validator = LanguageValidator.from_settings(settings)
        self.manager = AnswerLifecycleManager(
            library=self.library,
            persistence=self.persistence,
            evidence=LLMEvidenceExtractor(settings),
            synthesis=Synthesizer(settings, validator=validator),
            validator=validator,
            settings=settings,
        )
        self.questions = QuestionService(self.persistence, guardrails_path=settings.GUARDRAILS_PATH)


def _emit(payload) -> None:
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def _load_papers(path: str):
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("papers", [data])
    return [Paper.model_validate(item) for item in data]


def cmd_add_paper(app: App, args) -> int:
    papers = _load_papers(args.file)
    ids = app.library.add_papers(papers)
    related = {p.id: [q.id for q in app.questions.find_relevant_questions(p)] for p in papers}
    _emit({"added": ids, "relevant_questions": related})
    return 0


def cmd_answer(app: App, args) -> int:
    question = asyncio.run(app.manager.answer(args.question))
    _emit(question.model_dump(mode="json"))
    return 0


def cmd_refresh(app: App, args) -> int:
    question = asyncio.run(app.manager.refresh(args.question_id))
    _emit(question.model_dump(mode="json"))
    return 0


def cmd_show(app: App, args) -> int:
    _emit(app.questions.get_question(args.question_id).model_dump(mode="json"))
    return 0


def cmd_history(app: App, args) -> int:
    versions = app.questions.get_versions(args.question_id)
    _emit([v.model_dump(mode="json") for v in versions])
    return 0


def cmd_note(app: App, args) -> int:
    finding = app.questions.update_finding_notes(args.finding_id, args.text)
    _emit(finding.model_dump(mode="json"))
    return 0


def cmd_list(app: App, args) -> int:
    if args.status:
        questions = app.questions.questions_by_status(QuestionStatus(args.status))
    elif args.search:
        questions = app.questions.search_questions(args.search)
    else:
        questions = app.questions.list_questions()
    _emit([
        {"id": q.id, "question": q.question_text, "status": q.status.value,
         "confidence": q.confidence, "version": q.current_version}
        for q in questions
    ])
    return 0


def cmd_audit(app: App, args) -> int:
    _emit(app.questions.audit_status(args.question_id).model_dump(mode="json"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="research-qa", description="Answer research questions from a paper library")
    p.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("add-paper", help="Add papers from a JSON file to the library")
    s.add_argument("file")
    s.set_defaults(func=cmd_add_paper)

    s = sub.add_parser("answer", help="Answer a new question")
    s.add_argument("question")
    s.set_defaults(func=cmd_answer)

    s = sub.add_parser("refresh", help="Re-evaluate a question against the whole library")
    s.add_argument("question_id")
    s.set_defaults(func=cmd_refresh)

    s = sub.add_parser("show", help="Show a question with findings and contradictions")
    s.add_argument("question_id")
    s.set_defaults(func=cmd_show)

    s = sub.add_parser("history", help="Show pre-refresh versions of a question")
    s.add_argument("question_id")
    s.set_defaults(func=cmd_history)

    s = sub.add_parser("note", help="Set notes on a finding (empty text clears)")
    s.add_argument("finding_id")
    s.add_argument("text")
    s.set_defaults(func=cmd_note)

    s = sub.add_parser("list", help="List questions")
    s.add_argument("--status", choices=[st.value for st in QuestionStatus])
    s.add_argument("--search", default=None)
    s.set_defaults(func=cmd_list)

    s = sub.add_parser("audit", help="Recompute status from persisted findings")
    s.add_argument("question_id")
    s.set_defaults(func=cmd_audit)
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        overrides = {"DATABASE_URL": args.database_url} if args.database_url else {}
        settings = Settings(**overrides)  # instantiation triggers validators
    except (ConfigurationError, ValidationError) as e:
        sys.stderr.write(f"Configuration error: {e}\n")
        return 2

    init_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)
    try:
        app = App(settings)
        return args.func(app, args)
    except NotFoundError as e:
        sys.stderr.write(f"{e}\n")
        return 1
    except InvalidQuestionError as e:
        sys.stderr.write(f"Invalid question: {e}\n")
        return 1
    except PersistenceError as e:
        logger.error("persistence_failure", operation=e.operation, error=str(e))
        sys.stderr.write(f"Storage error: {e}\n")
        return 1
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted by user.\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
