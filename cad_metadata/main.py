from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from cad_metadata.aps.client import ApsClient
from cad_metadata.cli import build_parser
from cad_metadata.config import APS_BUCKET_KEY, CAD_REQUEST_TIMEOUT_SECONDS
from cad_metadata.errors import ExtractionError
from cad_metadata.extraction.service import ExtractionPipeline, create_extractor
from cad_metadata.logging_config import bind_request_id, generate_request_id, setup_logging
from cad_metadata.models import MetadataDocument


async def _amain() -> int:
    parser = build_parser()
    args = parser.parse_args()

    setup_logging(level=args.log_level.upper())
    bind_request_id(generate_request_id())
    logger = logging.getLogger("cad_metadata.cli")

    timeout = args.timeout if args.timeout and args.timeout > 0 else CAD_REQUEST_TIMEOUT_SECONDS

    async with ApsClient() as client:
        extractor = create_extractor(client)
        try:
            if args.urn:
                work = extractor.extract_metadata(args.urn)
            else:
                path = Path(args.path)
                if not path.is_file():
                    logger.error("File not found: %s", path)
                    return 2
                pipeline = ExtractionPipeline(
                    store=client,
                    submitter=client,
                    extractor=extractor,
                    bucket_key=args.bucket or APS_BUCKET_KEY,
                )
                work = pipeline.run(path.name, path.read_bytes())

            document: MetadataDocument = await asyncio.wait_for(work, timeout=timeout)
        except TimeoutError:
            logger.error("Extraction timed out after %.0fs", timeout)
            return 2
        except ExtractionError as e:
            logger.error("Extraction failed: %s", e)
            return 2
        except (ValueError, RuntimeError) as e:
            logger.error("Cannot extract: %s", e)
            return 2

    sys.stdout.write(document.model_dump_json(by_alias=True, indent=args.indent or None))
    sys.stdout.write("\n")
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(_amain()))


if __name__ == "__main__":
    main()
