"""
Main entry point for the Rekognition Tagger service.
"""

import asyncio
import argparse
import mimetypes
import sys
from typing import Optional
from .processor import AttachmentEnricher, ProcessorError
from .admin import format_labels
from .logging import setup_logging, get_logger
from .performance_monitor import performance_monitor
from .scheduler import JobQueue, Scheduler
from .search import install_keyword_search
from .server import run_server
from .storage import MediaLibrary, SearchQuery
from .triggers import on_update_attachment_metadata, register_enrichment_job


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Rekognition Tagger - AWS Rekognition enrichment for media attachments"
    )

    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Test connection to Rekognition and exit"
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create database tables")

    add_parser = subparsers.add_parser("add", help="Register an attachment and queue it for enrichment")
    add_parser.add_argument("file", help="Local path, s3://bucket/key or http(s) URL")
    add_parser.add_argument("--title", default="", help="Attachment title")
    add_parser.add_argument("--content", default="", help="Attachment caption/description")
    add_parser.add_argument("--mime-type", help="Override the guessed MIME type")

    enrich_parser = subparsers.add_parser("enrich", help="Enrich one attachment now")
    enrich_parser.add_argument("attachment_id", type=int)

    labels_parser = subparsers.add_parser("labels", help="Show detected labels for an attachment")
    labels_parser.add_argument("attachment_id", type=int)

    search_parser = subparsers.add_parser("search", help="Search attachments, including detected keywords")
    search_parser.add_argument("term")
    search_parser.add_argument("--limit", type=int, default=50)

    subparsers.add_parser("backfill", help="Queue every image attachment without keywords")
    subparsers.add_parser("run-jobs", help="Run due queued jobs once and exit")

    worker_parser = subparsers.add_parser("worker", help="Run the job worker and HTTP server")
    worker_parser.add_argument("--no-server", action="store_true", help="Do not start the HTTP server")
    worker_parser.add_argument(
        "--backfill",
        action="store_true",
        default=None,
        help="Enable the cron backfill regardless of ENABLE_SCHEDULER"
    )

    return parser.parse_args(argv)


def build_services(library: Optional[MediaLibrary] = None, client=None):
    """Wire the media library, enricher and job queue together."""
    library = library or MediaLibrary()
    library.create_schema()
    install_keyword_search(library)

    enricher = AttachmentEnricher(library=library, client=client)
    queue = JobQueue(library)
    register_enrichment_job(queue, enricher)
    return enricher, queue


async def run_worker(enricher: AttachmentEnricher, queue: JobQueue, with_server: bool, backfill: Optional[bool]):
    """Run the job worker, optionally alongside the HTTP server."""
    logger = get_logger("main")
    scheduler = Scheduler(queue, enable_backfill=backfill)

    server_task = asyncio.create_task(run_server(enricher, queue)) if with_server else None

    try:
        await scheduler.start()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("⏹️  Received interrupt signal, shutting down")
    finally:
        scheduler.stop()
        performance_monitor.log_performance_summary()
        if server_task:
            server_task.cancel()
            try:
                await server_task
            except asyncio.CancelledError:
                pass


def main(argv=None):
    """Main entry point."""
    setup_logging()
    logger = get_logger("main")

    args = parse_arguments(argv)
    enricher = None

    try:
        enricher, queue = build_services()
        library = enricher.library

        if args.test_connection:
            logger.info("🔍 Testing connection to Rekognition")
            if enricher.test_connection():
                logger.info("✅ Connection test successful")
                return 0
            logger.error("❌ Connection test failed")
            return 1

        if args.command == "init-db":
            logger.info("✅ Database schema ready")
            return 0

        if args.command == "add":
            mime_type = args.mime_type or mimetypes.guess_type(args.file)[0]
            attachment_id = library.add_attachment(
                args.file, title=args.title, content=args.content, mime_type=mime_type
            )
            queued = on_update_attachment_metadata(library, queue, attachment_id)
            logger.info(f"📎 Added attachment {attachment_id}" + (" (queued for enrichment)" if queued else ""))
            print(attachment_id)
            return 0

        if args.command == "enrich":
            result = enricher.update_attachment_data(args.attachment_id)
            if result.error:
                logger.error(f"❌ {result.error}")
                return 1
            for capability in result.failed:
                logger.warning(f"⚠️  '{capability.value}' failed")
            print("\n".join(result.keywords))
            return 0

        if args.command == "labels":
            print(format_labels(enricher.get_attachment_labels(args.attachment_id)))
            return 0

        if args.command == "search":
            for attachment in library.query(SearchQuery(search=args.term, limit=args.limit)):
                print(f"{attachment.id}\t{attachment.title or '-'}\t{attachment.file_path}")
            return 0

        if args.command == "backfill":
            queued = Scheduler(queue).enqueue_unenriched()
            logger.info(f"✅ {queued} attachments queued")
            return 0

        if args.command == "run-jobs":
            ran = queue.run_due()
            logger.info(f"✅ Ran {ran} queued jobs")
            return 0

        if args.command == "worker":
            logger.info("🚀 Starting Rekognition Tagger worker")
            asyncio.run(run_worker(enricher, queue, with_server=not args.no_server, backfill=args.backfill))
            logger.info("✅ Worker stopped")
            return 0

        logger.error("No command given, see --help")
        return 2

    except ProcessorError as e:
        logger.error(f"❌ Processor error: {str(e)}")
        return 1
    except KeyboardInterrupt:
        logger.info("⏹️  Service interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"❌ Unexpected error: {str(e)}")
        return 1
    finally:
        if enricher is not None:
            enricher.close()


if __name__ == "__main__":
    sys.exit(main())
