"""Command line entry point: extract documents, build reports, list document types."""

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from dotenv import load_dotenv
from tqdm import tqdm

from docintake.config import Settings
from docintake.core.exceptions import DocIntakeError
from docintake.core.security import guess_mime_type, sanitize_filename
from docintake.export import write_report_workbook
from docintake.logging_config import setup_logging
from docintake.pipeline import DocumentIntakePipeline

logger = logging.getLogger(__name__)

LOGS_FOLDER = "logs"


def _write_json(data: Any, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text + "\n", encoding="utf-8")
        logger.info(f"Wrote {path}")
    else:
        print(text)


async def _extract_one(pipeline: DocumentIntakePipeline, path: Path, doctype_hint: Optional[str], split_dir: Optional[Path]):
    documents = await pipeline.process_file(path, doctype_hint)

    if split_dir is not None and documents:
        document_bytes = await asyncio.to_thread(path.read_bytes)
        files = await asyncio.to_thread(pipeline.split_files, document_bytes, guess_mime_type(path) or "", documents)
        target = split_dir / sanitize_filename(path.stem)
        target.mkdir(parents=True, exist_ok=True)
        for document_file in files:
            (target / document_file.filename).write_bytes(document_file.content)
        logger.info(f"[SPLIT] {path.name} - {len(files)} file(s) written to {target}")

    return documents


async def run_extract(pipeline: DocumentIntakePipeline, args: argparse.Namespace) -> int:
    paths = [Path(p) for p in args.files]
    split_dir = Path(args.split_dir) if args.split_dir else None

    tasks = [asyncio.create_task(_extract_one(pipeline, path, args.doctype, split_dir)) for path in paths]

    documents = []
    failed = 0
    with tqdm(total=len(tasks), desc=f"Extracting {len(tasks)} file(s)", unit="file", disable=len(tasks) < 2) as pbar:
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for path, result in zip(paths, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failed += 1
                pbar.set_postfix_str(f"failed: {path.name}")
                logger.error(f"[EXTRACT ERROR] {path.name}: {str(result)[:200]}")
            else:
                documents.extend(result)
                pbar.set_postfix_str(f"{path.name} ({len(result)} doc)")
            pbar.update(1)

    _write_json([document.to_dict() for document in documents], args.output)
    return 1 if failed else 0


def run_report(pipeline: DocumentIntakePipeline, args: argparse.Namespace) -> int:
    with open(args.documents, encoding="utf-8") as f:
        payload = json.load(f)

    report = pipeline.build_report(payload)
    _write_json(report.to_dict(), args.output)
    if args.xlsx:
        write_report_workbook(report, args.xlsx)
    return 0


def run_doctypes(pipeline: DocumentIntakePipeline, args: argparse.Namespace) -> int:
    catalog = pipeline.catalog_provider.snapshot()
    for schema in catalog.list_schemas():
        print(f"{schema.id}\t{schema.value_frequency.value}\t{schema.label or ''}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docintake",
        description="Chilean document intake: extraction, normalization and consolidated reports"
    )
    parser.add_argument('--logs', default=LOGS_FOLDER,
                        help=f'Logs folder (default: {LOGS_FOLDER})')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Show debug messages on the console')
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract and normalize documents from images or PDFs")
    extract.add_argument("files", nargs="+", help="Image or PDF files to process")
    extract.add_argument("--doctype", help="Expected document type id (auto-detected if omitted)")
    extract.add_argument("--output", help="Write normalized documents JSON here (default: stdout)")
    extract.add_argument("--split-dir", help="Write one file per recognized document under this folder")

    report = subparsers.add_parser("report", help="Build the consolidated report from normalized documents")
    report.add_argument("documents", help='JSON file with {"documents": [...]} or a list of documents')
    report.add_argument("--output", help="Write report JSON here (default: stdout)")
    report.add_argument("--xlsx", help="Also write the report as an Excel workbook")

    subparsers.add_parser("doctypes", help="List the known document types")
    return parser


def main(argv: Optional[Sequence[str]] = None, pipeline: Optional[DocumentIntakePipeline] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(Path(args.logs), console_level="DEBUG" if args.verbose else "INFO")

    start_time = time.time()
    try:
        if pipeline is None:
            pipeline = DocumentIntakePipeline(Settings())

        if args.command == "extract":
            exit_code = asyncio.run(run_extract(pipeline, args))
        elif args.command == "report":
            exit_code = run_report(pipeline, args)
        else:
            exit_code = run_doctypes(pipeline, args)
    except (DocIntakeError, OSError, json.JSONDecodeError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 2

    logger.debug(f"{args.command} finished in {time.time() - start_time:.2f} seconds")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
