"""Command-line entry point: ingest a repository and ask questions about it.

Usage:
    python -m repochat ingest ~/src/my-repo
    python -m repochat ask ~/src/my-repo "What language is this written in?"
    python -m repochat --config repochat.yaml chat ~/src/my-repo
    python -m repochat --offline chat ~/src/my-repo
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .core.assistant import RepoAssistant
from .core.builder import PipelineBuilder, PipelineConfig
from .core.errors import RepoChatError
from .core.generator import APIGenerator, DummyGenerator, Generator
from .core.loader import corpus_id_for
from .ui import TerminalUI

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

CHAT_HELP = """
# RepoChat

Ask questions about the repository in natural language.

- `sources` - Show sources of the last answer
- `quit` - Exit
"""


def setup_logging(verbose: bool = False) -> None:
    """Send library logs to stderr; INFO and up when verbose, else WARNING."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger("repochat")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repochat",
        description="Answer questions about a source repository",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log pipeline activity")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use hashing embeddings and a canned generator (no model or network)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Index a repository and summarise it")
    ingest.add_argument("source", help="Local checkout path")

    ask = subparsers.add_parser("ask", help="Ask a single question")
    ask.add_argument("source", help="Local checkout path")
    ask.add_argument("question", help="Question about the repository")

    chat = subparsers.add_parser("chat", help="Interactive chat about a repository")
    chat.add_argument("source", help="Local checkout path")

    return parser


def load_config(args: argparse.Namespace) -> PipelineConfig:
    config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()
    if args.offline:
        config.offline = True
    return config


def make_generator(config: PipelineConfig) -> Generator:
    """APIGenerator over an OpenAI client, or DummyGenerator when offline."""
    if config.offline:
        return DummyGenerator(response_prefix="Offline mode: no completion service. Answering")

    from openai import OpenAI

    return APIGenerator(OpenAI(), model=config.completion_model)


def build_assistant(config: PipelineConfig) -> RepoAssistant:
    return PipelineBuilder(config).with_generator(make_generator(config)).build()


async def ensure_ingested(assistant: RepoAssistant, source: str) -> str:
    """Reuse an already-indexed corpus (persistent db_path), else ingest."""
    corpus_id = corpus_id_for(source)
    if assistant.retriever.store.count(corpus_id) > 0:
        logger.info("Reusing indexed corpus %s", corpus_id)
        return corpus_id
    return await assistant.retriever.ingest(source)


async def run_ingest(assistant: RepoAssistant, ui: TerminalUI, source: str) -> None:
    corpus_id, summary = await assistant.register(source)
    ui.show_registered(corpus_id, summary, assistant.retriever.store.count(corpus_id))


async def run_ask(assistant: RepoAssistant, ui: TerminalUI, source: str, question: str) -> None:
    corpus_id = await ensure_ingested(assistant, source)
    response = await assistant.ask(corpus_id, question)
    ui.show_answer(response)


async def run_chat(assistant: RepoAssistant, ui: TerminalUI, source: str) -> None:
    """Simple REPL; one conversation for the whole session."""
    corpus_id, summary = await assistant.register(source)
    ui.show_registered(corpus_id, summary, assistant.retriever.store.count(corpus_id))
    ui.show_markdown(CHAT_HELP)

    conversation_id: Optional[str] = None
    last_sources = []
    while True:
        try:
            user_input = ui.prompt()
        except (KeyboardInterrupt, EOFError):
            break

        if not user_input:
            continue
        if user_input.lower() in ["quit", "exit", "q"]:
            break
        if user_input.lower() == "sources":
            ui.show_sources(last_sources)
            continue

        try:
            response = await assistant.ask(corpus_id, user_input, conversation_id)
        except RepoChatError as e:
            ui.show_error(str(e))
            continue

        conversation_id = response.conversation_id
        last_sources = response.sources
        ui.show_answer(response)

    ui.show_info("Goodbye!")


def main(argv: Optional[list[str]] = None, ui: Optional[TerminalUI] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    ui = ui or TerminalUI()

    try:
        assistant = build_assistant(load_config(args))
    except RepoChatError as e:
        ui.show_error(str(e))
        return 1
    except FileNotFoundError as e:
        ui.show_error(f"Config file not found: {e.filename}")
        return 1

    try:
        if args.command == "ingest":
            asyncio.run(run_ingest(assistant, ui, args.source))
        elif args.command == "ask":
            asyncio.run(run_ask(assistant, ui, args.source, args.question))
        else:
            asyncio.run(run_chat(assistant, ui, args.source))
    except RepoChatError as e:
        ui.show_error(str(e))
        return 1
    finally:
        assistant.retriever.store.close()

    return 0
