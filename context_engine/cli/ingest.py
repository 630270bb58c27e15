# =============================================================================
# context_engine/cli/ingest.py -- Operator CLI for tenant knowledge bases
# =============================================================================
#
# Subcommands:
#
#   register-chatbot -- create a tenant (chatbot) record owned by --owner
#   add-text         -- ingest free text (inline or from a UTF-8 file)
#   add-file         -- extract text from a .pdf/.docx/.xlsx/.txt/... and ingest it
#   add-link         -- fetch a web page and ingest its main text
#   add-faq          -- ingest a question/answer pair
#   update           -- change a context's title and/or text
#   delete           -- delete a context and its embeddings
#   list             -- list a tenant's contexts
#   search           -- tenant-scoped semantic search
#   stats            -- embedding counts for a tenant
#   sweep            -- delete orphaned embeddings and abandoned contexts
#
# Every mutating command goes through SecureContextService and therefore
# needs --owner, the principal that registered the chatbot.
#
# add-text, add-file and update accept --delimiter for catalog content:
# each record between delimiters becomes one chunk.
#
# Usage examples:
#   python -m context_engine.cli register-chatbot --owner alice --name "Support bot"
#   python -m context_engine.cli add-faq --owner alice --tenant <id> \
#       --question "How much is the free plan?" --answer "It costs $0."
#   python -m context_engine.cli add-file --owner alice --tenant <id> \
#       --path products.txt --delimiter "||"
#   python -m context_engine.cli search --tenant <id> --query "pricing" --top-k 3
# =============================================================================

"""Standalone CLI for managing tenant knowledge bases.

Usage::

    python -m context_engine.cli register-chatbot --owner alice

    python -m context_engine.cli add-file --owner alice --tenant <id> --path guide.pdf

    python -m context_engine.cli search --tenant <id> --query "refund policy"
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

from context_engine.config.loader import load_config, settings_from_config
from context_engine.main import ContextEngine, build_engine
from context_engine.models.context import (
    Chatbot,
    FileMetadata,
    LinkMetadata,
    QuestionMetadata,
    TextMetadata,
)
from context_engine.models.rag import IngestionResult
from context_engine.utils.errors import ContextEngineError
from context_engine.utils.ids import new_id
from context_engine.utils.logging import configure_logging


def _print_ingestion(result: IngestionResult, heading: str = "Ingestion complete:") -> None:
    print(heading)
    print(f"  Context ID:         {result.context_id}")
    print(f"  Embeddings created: {result.embeddings_created}")
    print(f"  Embeddings skipped: {result.embeddings_skipped}")
    print(f"  Time:               {result.ingestion_time:.2f}s")


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_register_chatbot(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Create a tenant record."""
    chatbot = Chatbot(tenant_id=args.tenant or new_id(), owner_id=args.owner, name=args.name)
    engine.guard.validate_id_format(chatbot.tenant_id, "tenant_id")
    await engine.store.create_chatbot(chatbot)
    print(f"Registered chatbot '{chatbot.name}'")
    print(f"  Tenant ID: {chatbot.tenant_id}")
    print(f"  Owner:     {chatbot.owner_id}")
    return 0


async def _handle_add_text(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Ingest free text."""
    text = args.text
    if args.from_file:
        text = Path(args.from_file).read_text(encoding="utf-8")
    result = await engine.contexts.ingest(
        args.owner, args.tenant, args.title, text, TextMetadata(), delimiter=args.delimiter
    )
    _print_ingestion(result)
    return 0


async def _handle_add_file(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Extract an uploaded file's text and ingest it."""
    path = Path(args.path)
    data = path.read_bytes()
    mime_type = args.mime_type or mimetypes.guess_type(path.name)[0]
    print(f"Extracting: {path.name} ({len(data)} bytes)")
    text = await engine.file_extractor.extract(data, path.name, mime_type)
    metadata = FileMetadata(file_name=path.name, mime_type=mime_type, file_size=len(data))
    result = await engine.contexts.ingest(
        args.owner, args.tenant, args.title or "", text, metadata, delimiter=args.delimiter
    )
    _print_ingestion(result)
    return 0


async def _handle_add_link(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Fetch a web page and ingest its main text."""
    print(f"Fetching: {args.url}")
    page = await engine.web_pages.fetch_text(args.url)
    # Stored under the URL as given so the duplicate-source check matches resubmissions.
    result = await engine.contexts.ingest(
        args.owner,
        args.tenant,
        args.title or page.title,
        page.text,
        LinkMetadata(url=args.url),
    )
    _print_ingestion(result)
    return 0


async def _handle_add_faq(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Ingest a question/answer pair."""
    metadata = QuestionMetadata(question=args.question, answer=args.answer)
    result = await engine.contexts.ingest(
        args.owner, args.tenant, args.title or "", args.answer, metadata
    )
    _print_ingestion(result)
    return 0


async def _handle_update(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Change a context's title and/or text."""
    text = args.text
    if args.from_file:
        text = Path(args.from_file).read_text(encoding="utf-8")
    result = await engine.contexts.update_context(
        args.owner,
        args.tenant,
        args.context,
        title=args.title,
        content=text,
        delimiter=args.delimiter,
    )
    _print_ingestion(result, heading="Update complete:")
    return 0


async def _handle_delete(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Delete a context and its embeddings."""
    if not args.yes:
        confirm = input(f"  Delete context {args.context}? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0
    removed = await engine.contexts.delete_context(args.owner, args.tenant, args.context)
    print(f"Deleted context {args.context} ({removed} embeddings).")
    return 0


async def _handle_list(args: argparse.Namespace, engine: ContextEngine) -> int:
    """List a tenant's contexts."""
    contexts = await engine.query.list_contexts(args.tenant)
    if not contexts:
        print("No contexts.")
        return 0
    for context in contexts:
        print(
            f"  {context.context_id}  {context.content_type.value:<8}  "
            f"{len(context.embedding_ids):>4} chunks  {context.size_kb:>5} KB  {context.title}"
        )
    return 0


async def _handle_search(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Tenant-scoped semantic search."""
    results = await engine.query.search_with_filters(
        args.tenant,
        args.query,
        content_type=args.type,
        context_id=args.context,
        top_k=args.top_k,
    )
    if not results:
        print("No results.")
        return 0
    for rank, result in enumerate(results, start=1):
        snippet = " ".join(result.content.split())[:120]
        print(f"{rank:>2}. [{result.score:.3f}] {result.source_name}")
        print(f"    {snippet}")
    return 0


async def _handle_stats(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Display embedding statistics for a tenant."""
    stats = await engine.query.get_stats(args.tenant)

    print("Embedding Statistics")
    print("=" * 40)
    print(f"  Total embeddings: {stats.total_embeddings}")
    print(f"  Total contexts:   {stats.total_contexts}")
    if stats.oldest_embedding:
        print(f"  Oldest:           {stats.oldest_embedding.isoformat()}")
        print(f"  Newest:           {stats.newest_embedding.isoformat()}")
    if stats.by_content_type:
        print("\n  By content type:")
        for content_type, count in sorted(stats.by_content_type.items()):
            print(f"    {content_type:<10} {count}")
    return 0


async def _handle_sweep(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Delete orphaned embeddings and abandoned contexts."""
    report = await engine.sweeper.sweep(batch_size=args.batch_size, dry_run=args.dry_run)
    print("Sweep complete:" if not args.dry_run else "Sweep (dry run):")
    print(f"  Embeddings scanned: {report.total_embeddings}")
    print(f"  Orphaned:           {report.orphaned}")
    print(f"  Deleted:            {report.deleted}")
    print(f"  Contexts removed:   {report.contexts_removed}")
    print(f"  Errors:             {report.errors}")
    return 0 if report.errors == 0 else 1


_HANDLERS = {
    "register-chatbot": _handle_register_chatbot,
    "add-text": _handle_add_text,
    "add-file": _handle_add_file,
    "add-link": _handle_add_link,
    "add-faq": _handle_add_faq,
    "update": _handle_update,
    "delete": _handle_delete,
    "list": _handle_list,
    "search": _handle_search,
    "stats": _handle_stats,
    "sweep": _handle_sweep,
}


async def run_command(args: argparse.Namespace, engine: ContextEngine) -> int:
    """Start *engine*, dispatch *args* to its handler, and map errors to exit code 1."""
    try:
        await engine.startup()
        return await _HANDLERS[args.command](args, engine)
    except ContextEngineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await engine.close()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_owner_tenant(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--owner", required=True, help="Principal that owns the chatbot")
    parser.add_argument("--tenant", required=True, help="Chatbot (tenant) id")


def _add_delimiter(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--delimiter",
        default=None,
        help="Catalog mode: one chunk per record between occurrences of this string",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m context_engine.cli",
        description="Manage tenant knowledge bases for the context engine.",
    )
    parser.add_argument(
        "--config", default="config/config.yaml", help="YAML config file (default: config/config.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- register-chatbot --
    reg_parser = subparsers.add_parser("register-chatbot", help="Create a tenant record")
    reg_parser.add_argument("--owner", required=True, help="Owning principal id")
    reg_parser.add_argument("--name", default="", help="Display name")
    reg_parser.add_argument("--tenant", default=None, help="Explicit tenant id (default: generated)")

    # -- add-text --
    text_parser = subparsers.add_parser("add-text", help="Ingest free text")
    _add_owner_tenant(text_parser)
    text_parser.add_argument("--title", required=True, help="Context title")
    text_source = text_parser.add_mutually_exclusive_group(required=True)
    text_source.add_argument("--text", help="Inline text")
    text_source.add_argument("--from-file", dest="from_file", help="Read text from a UTF-8 file")
    _add_delimiter(text_parser)

    # -- add-file --
    file_parser = subparsers.add_parser("add-file", help="Extract and ingest a file")
    _add_owner_tenant(file_parser)
    file_parser.add_argument("--path", required=True, help="Path to the file")
    file_parser.add_argument("--title", default=None, help="Context title (default: none)")
    file_parser.add_argument("--mime-type", dest="mime_type", default=None, help="Override mime type")
    _add_delimiter(file_parser)

    # -- add-link --
    link_parser = subparsers.add_parser("add-link", help="Fetch and ingest a web page")
    _add_owner_tenant(link_parser)
    link_parser.add_argument("--url", required=True, help="Page URL")
    link_parser.add_argument("--title", default=None, help="Context title (default: page title)")

    # -- add-faq --
    faq_parser = subparsers.add_parser("add-faq", help="Ingest a question/answer pair")
    _add_owner_tenant(faq_parser)
    faq_parser.add_argument("--question", required=True, help="The question")
    faq_parser.add_argument("--answer", required=True, help="The answer")
    faq_parser.add_argument("--title", default=None, help="Context title (default: the question)")

    # -- update --
    update_parser = subparsers.add_parser("update", help="Edit a context")
    _add_owner_tenant(update_parser)
    update_parser.add_argument("--context", required=True, help="Context id")
    update_parser.add_argument("--title", default=None, help="New title")
    update_source = update_parser.add_mutually_exclusive_group()
    update_source.add_argument("--text", default=None, help="New inline text")
    update_source.add_argument("--from-file", dest="from_file", help="Read new text from a file")
    _add_delimiter(update_parser)

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a context")
    _add_owner_tenant(delete_parser)
    delete_parser.add_argument("--context", required=True, help="Context id")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # -- list --
    list_parser = subparsers.add_parser("list", help="List a tenant's contexts")
    list_parser.add_argument("--tenant", required=True, help="Chatbot (tenant) id")

    # -- search --
    search_parser = subparsers.add_parser("search", help="Semantic search within a tenant")
    search_parser.add_argument("--tenant", required=True, help="Chatbot (tenant) id")
    search_parser.add_argument("--query", required=True, help="Query text")
    search_parser.add_argument("--top-k", dest="top_k", type=int, default=None, help="Result count")
    search_parser.add_argument(
        "--type",
        choices=["TEXT", "FILE", "LINK", "QUESTION"],
        default=None,
        help="Only this content type",
    )
    search_parser.add_argument("--context", default=None, help="Only this context id")

    # -- stats --
    stats_parser = subparsers.add_parser("stats", help="Show embedding statistics")
    stats_parser.add_argument("--tenant", required=True, help="Chatbot (tenant) id")

    # -- sweep --
    sweep_parser = subparsers.add_parser("sweep", help="Reconcile orphaned embeddings")
    sweep_parser.add_argument("--batch-size", dest="batch_size", type=int, default=1000)
    sweep_parser.add_argument("--dry-run", dest="dry_run", action="store_true")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Loads YAML config merged with environment settings, configures
    logging, builds the engine, and dispatches to the subcommand handler.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        app_settings = settings_from_config(load_config(args.config))
        engine = build_engine(app_settings)
    except ContextEngineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(
        log_level=app_settings.log_level,
        json_output=app_settings.app_env == "production",
    )

    exit_code = asyncio.run(run_command(args, engine))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
