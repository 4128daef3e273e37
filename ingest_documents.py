"""
Ingest the reference corpus into the vector index.

Loads a PDF (page by page) or text file, splits it into overlapping chunks,
embeds them with the configured provider, and upserts them into the configured
index. With --samples, ingests the built-in Swiss law excerpts instead.

Usage:
    python ingest_documents.py --path docs/swiss_legal.pdf
    python ingest_documents.py --samples
    python ingest_documents.py --samples --backend memory --chunk-size 800 --chunk-overlap 200
"""

import sys
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    from execution.legal_assistant.errors import ConfigurationError
    from execution.legal_assistant.service import AssistantService
    from execution.legal_assistant.settings import AssistantConfig

    arg_parser = argparse.ArgumentParser(description="Ingest legal documents into the vector index")
    source = arg_parser.add_mutually_exclusive_group()
    source.add_argument("--path", type=str, help="PDF or text file to ingest (default: DOCUMENT_PATH)")
    source.add_argument("--samples", action="store_true", help="Ingest the built-in sample corpus")
    arg_parser.add_argument("--index", type=str, help="Index name (default: VECTOR_INDEX_NAME)")
    arg_parser.add_argument("--backend", choices=["pgvector", "memory"], help="Vector backend override")
    arg_parser.add_argument("--chunk-size", type=int, help="Chunk size in characters")
    arg_parser.add_argument("--chunk-overlap", type=int, help="Chunk overlap in characters")
    args = arg_parser.parse_args()

    config = AssistantConfig.from_env()
    if args.index:
        config.index_name = args.index
    if args.backend:
        config.vector_backend = args.backend
    if args.path:
        config.document_path = args.path

    try:
        service = AssistantService(config).startup()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    if args.samples:
        logger.info("Ingesting built-in sample corpus")
        result = service.ingest_samples(args.chunk_size, args.chunk_overlap)
    elif config.document_path:
        logger.info(f"Ingesting {config.document_path}")
        result = service.ingest_file(config.document_path, args.chunk_size, args.chunk_overlap)
    else:
        logger.error("Nothing to ingest: pass --path, --samples, or set DOCUMENT_PATH")
        sys.exit(1)

    if not result.success:
        logger.error(f"Ingestion failed: {result.message}")
        sys.exit(1)

    print("\nIngestion complete")
    print(f"  Total chunks:    {result.total_chunks}")
    print(f"  Total pages:     {result.total_pages}")
    print(f"  Processing time: {result.processing_time_ms}ms")


if __name__ == "__main__":
    main()
